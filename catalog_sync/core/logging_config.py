# catalog_sync/core/logging_config.py
"""
Centralized logging configuration for the service.

Keeps the catalog sync loggers at the configured level while holding the
HTTP client and database drivers at WARNING.
"""

import logging
import os


def configure_logging():
    """
    Configure logging for the application.

    - App code: INFO (or whatever LOG_LEVEL says)
    - HTTP clients (httpx, httpcore): WARNING only
    - Database (sqlalchemy, asyncpg, aiosqlite): WARNING only
    """

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    # Quiet noisy HTTP client loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # Quiet database loggers
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logging.getLogger("catalog_sync").setLevel(level)
    logging.getLogger("__main__").setLevel(level)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")


# Auto-configure when module is imported
configure_logging()
