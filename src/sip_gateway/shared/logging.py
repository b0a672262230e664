"""
Structured JSON logging for the gateway.

Every ``sip_gateway.*`` logger writes through one stdout handler attached to
the package logger. Structured fields go in ``extra={...}``; the request or
WebSocket correlation id is added from ``correlation_id_var``.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from sip_gateway.config import Settings, get_settings

PACKAGE_LOGGER = "sip_gateway"

# Level used before setup_logging() runs (imports, tests)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            log_data["service"] = self.service

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            log_data[f"extra_{key}" if key in log_data else key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _package_logger() -> logging.Logger:
    package = logging.getLogger(PACKAGE_LOGGER)
    if not package.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        package.addHandler(handler)
        package.propagate = False
        package.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return package


def get_logger(name: str) -> logging.Logger:
    """Logger for a gateway module (pass ``__name__``)."""
    _package_logger()
    return logging.getLogger(name)


def setup_logging(settings: Settings | None = None) -> None:
    """Apply configured levels and tag every line with the service name."""
    settings = settings or get_settings()
    formatter = StructuredFormatter(service=settings.app_name)

    package = _package_logger()
    package.setLevel(settings.log_level)
    for handler in package.handlers:
        handler.setFormatter(formatter)

    root_handler = logging.StreamHandler(sys.stdout)
    root_handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers = [root_handler]

    sqlalchemy_level = os.getenv("SQLALCHEMY_LOG_LEVEL", "").strip().upper() or "WARNING"
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_level)
    logging.getLogger("sqlalchemy.pool").setLevel(sqlalchemy_level)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log with keyword context; keys must not collide with LogRecord attributes."""
    logger.log(level, message, extra=context)
