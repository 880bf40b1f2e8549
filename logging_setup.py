"""
Logging configuration for the delivery service.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

import config

_CONFIGURED: set[str] = set()


class StructuredFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields = getattr(record, "fields", None)
        if fields:
            log_obj.update(fields)

        return json.dumps(log_obj, default=str)


def setup_logging(name: str = "deliveries") -> logging.Logger:
    """Setup and return a configured logger. Safe to call more than once."""
    logger = logging.getLogger(name)
    if name in _CONFIGURED:
        return logger

    level = getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO)
    logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
    logger.addHandler(console_handler)

    if config.LOG_FILE:
        file_handler = logging.FileHandler(config.LOG_FILE)
        file_handler.setLevel(level)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    _CONFIGURED.add(name)
    return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Log an event with structured fields attached for the JSON handler."""
    details = ", ".join(f"{k}={v}" for k, v in fields.items())
    message = f"{event} ({details})" if details else event
    logger.log(level, message, extra={"fields": {"event": event, **fields}})
