"""Standalone server entry point.

Runs the FastAPI app under uvicorn; installed as the ``sellerdesk`` command.
"""

import uvicorn

from sellerdesk.config.settings import get_settings
from sellerdesk.main import app


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
