"""
Structured JSON logging utilities.

Remote sync failures are logged with enough context (operation, project id,
error kind, remote message) for an external reconciliation job to act on.
The JSON formatter keeps those context fields as top-level keys so log
pipelines can filter on them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .exceptions import ProjectStorageError

_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message",
    }
)


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter emitting one object per line.

    Fields: timestamp (UTC ISO 8601), level, logger, message, plus any
    extra context passed through ``extra=`` or a ``SyncLoggerAdapter``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = None,
) -> logging.Logger:
    """
    Route a logger's output to stdout as structured JSON.

    Args:
        level: Logging level (default: INFO)
        logger_name: Specific logger to configure (default: root logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def failure_context(error: ProjectStorageError, **context: Any) -> dict[str, Any]:
    """Build ``extra`` fields for logging a storage failure.

    The error's details become top-level fields; a remote error's ``kind``
    is reported as ``error_kind`` to match ``SyncLoggerAdapter`` records.
    """
    extra: dict[str, Any] = {"error_type": type(error).__name__, **error.details, **context}
    if "kind" in extra:
        extra["error_kind"] = extra.pop("kind")
    return extra


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches sync context to every record.

    Per-call ``extra`` values override the adapter's defaults.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs
