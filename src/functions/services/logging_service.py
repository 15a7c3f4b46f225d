"""Structured JSON logging for Log Analytics.

Every line carries the job context (report id, template, stage) as top-level
fields, so one query returns a job's whole history.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# Context fields promoted to the top level of JSON log lines
JOB_CONTEXT_FIELDS = ("reportId", "templateName", "stage")

# Attributes every LogRecord has; anything else was passed via ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class JsonFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log record."""

    def __init__(self, include_extra: bool = True) -> None:
        """Initialize JSON formatter.

        Args:
            include_extra: Include extra fields from log record.
        """
        super().__init__()
        self.include_extra = include_extra
        self._service_name = os.environ.get("WEBSITE_SITE_NAME", "local-functions")
        self._environment = os.environ.get("AZURE_FUNCTIONS_ENVIRONMENT", "Development")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service_name,
            "environment": self._environment,
        }

        for key in JOB_CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = _jsonable(value)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra_fields = {
                key: _jsonable(value)
                for key, value in record.__dict__.items()
                if key not in _RESERVED_ATTRS and key not in JOB_CONTEXT_FIELDS
            }
            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """Logger wrapper that attaches bound context to every record."""

    def __init__(self, name: str, context: dict[str, Any] | None = None) -> None:
        """Initialize structured logger.

        Args:
            name: Logger name (usually __name__).
            context: Fields added to every record.
        """
        self._logger = logging.getLogger(name)
        self._context: dict[str, Any] = dict(context or {})

    @property
    def context(self) -> dict[str, Any]:
        """Copy of the bound context."""
        return dict(self._context)

    def with_context(self, **kwargs: Any) -> "StructuredLogger":
        """Return a logger with additional bound context."""
        return StructuredLogger(self._logger.name, {**self._context, **kwargs})

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        extra = {k: v for k, v in {**self._context, **kwargs}.items() if v is not None}
        self._logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log error message with the current traceback."""
        self._log(logging.ERROR, message, exc_info=True, **kwargs)


def configure_json_logging(level: str = "INFO") -> None:
    """Configure the root logger.

    JSON output is used on Azure (``WEBSITE_SITE_NAME`` set) or when
    ``LOG_FORMAT=json``; otherwise logs stay human-readable.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
    """
    is_azure = os.environ.get("WEBSITE_SITE_NAME") is not None
    use_json = os.environ.get("LOG_FORMAT", "auto").lower() == "json" or is_azure
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)

    # The Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(
        logging.WARNING
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_structured_logger(name: str, **context: Any) -> StructuredLogger:
    """Get a structured logger, optionally with bound context."""
    return StructuredLogger(name, context)
