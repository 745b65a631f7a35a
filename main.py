"""Run the Traffic application with uvicorn."""

import os
from typing import Any

import uvicorn
from loguru import logger

from traffic.core.config import get_settings
from traffic.core.logging import INTERCEPTED_LOGGERS, setup_logging


def uvicorn_log_config(level: str) -> dict[str, Any]:
    """Route uvicorn's standard logging records into Loguru.

    Args:
        level: Level applied to every uvicorn logger.

    Returns:
        dict[str, Any]: A ``logging.config.dictConfig`` mapping.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "loguru": {"class": "traffic.core.logging.InterceptHandler"},
        },
        "loggers": {
            name: {"handlers": ["loguru"], "level": level, "propagate": False}
            for name in INTERCEPTED_LOGGERS
        },
    }


def main() -> None:
    """Serve the application factory; reload follows the debug flag."""
    settings = get_settings()
    setup_logging(settings)

    # Container platforms pass the listening port in PORT
    port = int(os.environ.get("PORT", settings.api_port))
    mode = "development mode with auto-reload" if settings.debug else "production mode"
    logger.info("Starting Uvicorn on http://{}:{} ({})", settings.api_host, port, mode)

    uvicorn.run(
        "traffic.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=uvicorn_log_config(settings.log_config.log_level),
    )


if __name__ == "__main__":
    main()
