"""Structured logging setup shared by the API server and the CLI.

Library modules log through ``logging.getLogger(__name__)``; this module routes
those records and structlog's own events through one processor chain.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

# Loggers that drown out import progress at INFO
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "uvicorn.access", "httpx")


def _wants_json() -> bool:
    if os.getenv("JSON_LOGS", "").lower() == "true":
        return True
    return os.getenv("LOG_FORMAT", "text").lower() == "json"


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structured logging for the application.

    Args:
        level: Root log level; defaults to LOG_LEVEL (INFO)
        json_logs: Render JSON lines; defaults to JSON_LOGS=true or LOG_FORMAT=json
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_logs is None:
        json_logs = _wants_json()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    if log_dir.is_dir():
        handlers.append(logging.FileHandler(log_dir / "unitsync.log"))

    logging.basicConfig(format="%(message)s", handlers=handlers, level=level, force=True)

    quiet_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
