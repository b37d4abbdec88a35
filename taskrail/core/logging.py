"""
Logging configuration for taskrail.
"""

import json
import logging
import sys
from typing import Any, Optional

from taskrail.core.config import Settings, settings

# Structured fields an execution event may attach to a log record via ``extra``
EVENT_FIELDS = (
    "run_id",
    "task",
    "task_name",
    "task_category",
    "status",
    "tenant_id",
    "project_id",
    "user_id",
    "tags",
    "error",
    "attributes",
)


def setup_logging(app_settings: Optional[Settings] = None) -> None:
    """Configure logging for the application.

    ``LOG_LEVEL`` and ``LOG_JSON`` override the environment defaults (DEBUG
    and plain text in dev, INFO everywhere else, JSON in prod).
    """
    app_settings = app_settings or settings

    if app_settings.log_level:
        log_level = logging.getLevelName(app_settings.log_level)
    else:
        log_level = logging.DEBUG if app_settings.is_development else logging.INFO

    use_json = app_settings.log_json if app_settings.log_json is not None else app_settings.is_production

    # Create formatter
    if use_json:
        # JSON formatter so execution events stay machine readable
        formatter = JSONFormatter()
    else:
        # Pretty formatter for development
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Add console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Configure specific loggers
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)  # Suppress SQL queries
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging in production.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            str: JSON formatted log message
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add execution event fields
        for field_name in EVENT_FIELDS:
            value = getattr(record, field_name, None)
            if value is not None:
                log_data[field_name] = value

        return json.dumps(log_data, default=str)
