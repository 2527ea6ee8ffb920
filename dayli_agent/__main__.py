import uvicorn

from dayli_agent.application.api.api_server import create_app
from dayli_agent.infrastructure.config import Settings


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
