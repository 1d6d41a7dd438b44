import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from cashback_api.api.dependencies.cashback import get_gateway_factory, get_session_factory  # noqa: E402
from cashback_api.app import create_app  # noqa: E402
from cashback_api.db.base import Base  # noqa: E402
from cashback_api.db.session import get_session  # noqa: E402
from cashback_api.observability.cashback import get_cashback_store  # noqa: E402
from cashback_api.observability.scheduler import get_scheduler_store  # noqa: E402
from cashback_api.services.cashback import InMemoryMessagingGateway  # noqa: E402


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # File-backed so concurrent sessions get their own connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cashback.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture(autouse=True)
def reset_observability():
    get_cashback_store().reset()
    get_scheduler_store().reset()
    yield


@pytest.fixture
def gateway() -> InMemoryMessagingGateway:
    return InMemoryMessagingGateway()


@pytest_asyncio.fixture
async def app_with_db(session_factory, gateway):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_gateway_factory] = lambda: (lambda: gateway)

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
