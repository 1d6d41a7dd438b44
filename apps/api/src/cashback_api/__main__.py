import uvicorn

from .app import create_app  # noqa: F401


def main() -> None:
    uvicorn.run("cashback_api.app:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
