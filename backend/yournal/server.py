from __future__ import annotations

import uvicorn

from yournal.core.config import get_settings


def main() -> None:
    """Serve the API with uvicorn using host/port from settings."""

    settings = get_settings()
    from yournal.main import app

    config = uvicorn.Config(
        app,
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )
    uvicorn.Server(config).run()


if __name__ == "__main__":
    main()
