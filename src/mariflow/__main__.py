"""Run the API server: ``python -m mariflow``."""

import uvicorn

from mariflow.api.factory import create_app
from mariflow.config import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
