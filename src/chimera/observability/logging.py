"""
Structured logging for the admission webhook kit.

While an admission review is handled its request UID is the correlation id,
so every line logged for that review (decode, decision, response) can be
joined with the API server's audit log. Outside a review, a short random id
is assigned per task.

Components never configure logging themselves: they receive a LoggerSink
and pass structured fields as keyword arguments.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Protocol

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Record attributes copied into JSON output when a component sets them
STRUCTURED_FIELDS = (
    "admission",
    "webhook",
    "path",
    "uid",
    "operation",
    "http_status",
    "allowed",
    "attempt",
    "duration",
    "error_type",
    "registered_webhooks",
)

# Chatty third-party loggers kept at WARNING
_QUIET_LOGGERS = ("kubernetes", "urllib3", "aiohttp.access", "aiohttp.server")


def generate_correlation_id() -> str:
    """Return a short random id for log lines outside an admission review."""
    return uuid.uuid4().hex[:8]


def set_correlation_id(corr_id: str) -> str:
    """Bind ``corr_id`` to the current task (an admission request UID)."""
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    return correlation_id.get()


class CorrelationIDFilter(logging.Filter):
    """Stamps each record with the correlation id of the current task."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or set_correlation_id(
            generate_correlation_id()
        )
        return True


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Always carries timestamp, level, logger, message and correlation_id;
    admission and registration fields are added when present on the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }
        entry.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
) -> None:
    """
    Replace the root handlers with a single stderr handler.

    Args:
        log_level: Root level name (DEBUG shows admission request bodies)
        enable_json_formatting: Emit JSON lines instead of plain text
        correlation_id_enabled: Stamp records with the correlation id
    """
    if enable_json_formatting:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        prefix = "%(asctime)s - "
        if correlation_id_enabled:
            prefix += "%(correlation_id)s - "
        formatter = logging.Formatter(prefix + "%(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.getLevelName(log_level.upper()) if log_level else logging.INFO)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LoggerSink(Protocol):
    """Leveled logging capability consumed by the admission components."""

    def debug(self, message: str, **kwargs: Any) -> None: ...
    def info(self, message: str, **kwargs: Any) -> None: ...
    def warning(self, message: str, **kwargs: Any) -> None: ...
    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None: ...


class AdmissionLogger:
    """
    LoggerSink writing to a standard library logger.

    Keyword arguments become record attributes, which StructuredFormatter
    emits as JSON fields:

        logger.info("installed", admission="demo", registered_webhooks=2)
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, exc_info=exc_info, extra=kwargs)


class NullLogger:
    """LoggerSink that discards everything."""

    def debug(self, message: str, **kwargs: Any) -> None:
        pass

    def info(self, message: str, **kwargs: Any) -> None:
        pass

    def warning(self, message: str, **kwargs: Any) -> None:
        pass

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        pass
