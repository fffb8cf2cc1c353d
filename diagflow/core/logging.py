"""Logging for diagflow.

Log records carry a per-request / per-session context (request id, session
id, workflow name, node id). The context lives in a ``ContextVar`` so
concurrent requests served by the same event loop or thread pool never see
each other's fields. Use ``logging_context(...)`` to scope fields to a block;
it restores whatever context was active before.
"""

import json
import logging
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

# Promoted to top-level keys in JSON output, shown first in text output
CONTEXT_FIELDS = ("request_id", "session_id", "workflow", "node_id")

DEFAULT_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context_suffix)s"

# Third-party loggers that are too chatty at the application level
_LIBRARY_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
}

_log_context: ContextVar[Dict[str, Any]] = ContextVar("diagflow_log_context", default={})


def get_logging_context() -> Dict[str, Any]:
    """Copy of the fields attached to records emitted from the current context."""
    return dict(_log_context.get())


def set_logging_context(**fields) -> Token:
    """
    Merge ``fields`` into the current logging context.

    Returns:
        Token: Pass to ``reset_logging_context`` to restore the previous context
    """
    return _log_context.set({**_log_context.get(), **fields})


def reset_logging_context(token: Token) -> None:
    _log_context.reset(token)


def clear_logging_context() -> None:
    """Drop every context field for the current context."""
    _log_context.set({})


@contextmanager
def logging_context(**fields) -> Iterator[Dict[str, Any]]:
    """Attach ``fields`` to records logged inside the block."""
    token = set_logging_context(**fields)
    try:
        yield get_logging_context()
    finally:
        reset_logging_context(token)


def _ordered_context(fields: Dict[str, Any]) -> List[tuple]:
    known = [(key, fields[key]) for key in CONTEXT_FIELDS if key in fields]
    rest = sorted((key, value) for key, value in fields.items() if key not in CONTEXT_FIELDS)
    return known + rest


class SessionContextFilter(logging.Filter):
    """Copies the active logging context onto each record.

    Fields passed explicitly through ``extra={"extra_fields": ...}`` win over
    context fields of the same name.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        explicit = getattr(record, "extra_fields", None) or {}
        fields = {**_log_context.get(), **explicit}
        record.extra_fields = fields
        if fields:
            pairs = " ".join(f"{key}={value}" for key, value in _ordered_context(fields))
            record.context_suffix = f" [{pairs}]"
        else:
            record.context_suffix = ""
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with context fields as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for key, value in _ordered_context(getattr(record, "extra_fields", None) or {}):
            entry.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, tb = record.exc_info
            entry["exception"] = {
                "type": error_type.__name__,
                "message": str(error),
                "traceback": traceback.format_exception(error_type, error, tb),
            }

        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plain-text formatter tolerant of records that skipped the context filter."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "context_suffix"):
            record.context_suffix = ""
        return super().format(record)


def _build_formatter(structured: bool, log_format: Optional[str]) -> logging.Formatter:
    if structured:
        return StructuredFormatter()
    fmt = log_format or DEFAULT_TEXT_FORMAT
    if "%(context_suffix)s" not in fmt:
        fmt += "%(context_suffix)s"
    return ContextTextFormatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the service, CLI and tests.

    Replaces any handlers already installed on the root logger, so calling
    it again (for example once per application lifespan) is safe.

    Args:
        level: Logging level name
        log_file: Optional path of a size-rotated log file
        log_format: Text format; ignored when ``structured`` is set
        structured: Emit JSON lines instead of text
        max_size: Bytes before the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The configured root logger
    """
    numeric_level = getattr(logging, level.upper())
    formatter = _build_formatter(structured, log_format)
    context_filter = SessionContextFilter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    for name, library_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)
    logging.getLogger("diagflow").setLevel(numeric_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log one message with extra fields on top of the active context."""
    logger.log(level, message, extra={"extra_fields": context})
