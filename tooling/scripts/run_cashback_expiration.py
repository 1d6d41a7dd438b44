#!/usr/bin/env python3
"""Expire cashback lots whose expiry date has passed."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the cashback lot expiration sweep once")
    parser.add_argument(
        "--as-of",
        type=_parse_timestamp,
        default=None,
        help="ISO-8601 clock to expire against (naive values are read as UTC). Defaults to now.",
    )
    parser.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit with status 1 when the sweep fails.",
    )
    return parser.parse_args()


async def _run(as_of: datetime | None) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from cashback_api.db.session import async_session  # type: ignore import-position
    from cashback_api.services.cashback import CashbackTriggerService  # type: ignore import-position

    summary = await CashbackTriggerService(async_session).expire_lots(as_of)
    return summary.expiration_payload()


def main() -> int:
    args = parse_args()
    payload = asyncio.run(_run(args.as_of))
    if not payload["success"]:
        logger.error("Cashback expiration sweep failed", error=payload.get("error"))
        return 1 if args.fail_on_error else 0
    logger.success("Cashback expiration sweep completed", **payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
