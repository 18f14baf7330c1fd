"""Logging configuration for the workflow simulator."""

import logging
import sys
import json
import traceback
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime
from typing import Optional, Dict, Any, Iterator
from pathlib import Path


SERVICE_NAME = "flowsim"

# Fields such as request_id and run_id; scoped to the current thread or task
_log_context: ContextVar[Dict[str, Any]] = ContextVar("flowsim_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """JSON formatter; simulation context fields are merged into each line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


class SimulationContextFilter(logging.Filter):
    """Stamps the active request and run context onto log records.

    Plain-text lines get a ``[run_id=...]`` style prefix via ``context``;
    structured lines get the fields merged in by :class:`StructuredFormatter`.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get()
        fields = dict(context)
        fields.update(getattr(record, 'extra_fields', {}))
        record.extra_fields = fields
        record.context = " ".join(f"[{key}={value}]" for key, value in context.items())
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure logging for the workflow simulator.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        log_format: Custom log format string; ``%(context)s`` expands to the run/request context
        structured: Whether to use structured JSON logging
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of backup files to keep

    Returns:
        Root logger instance
    """
    if structured:
        formatter = StructuredFormatter()
    else:
        if log_format is None:
            log_format = "%(asctime)s - %(name)s - %(levelname)s %(context)s - %(message)s"

        formatter = logging.Formatter(
            fmt=log_format,
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    context_filter = SimulationContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        from logging.handlers import RotatingFileHandler

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        root_logger.addHandler(file_handler)

    # Quiet third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(f"{SERVICE_NAME}.core").setLevel(logging.DEBUG if level.upper() == "DEBUG" else logging.INFO)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def get_logging_context() -> Dict[str, Any]:
    """Context fields currently attached to log records."""
    return dict(_log_context.get())


def set_logging_context(**kwargs) -> Token:
    """Add context fields for subsequent log messages; returns a token for :func:`clear_logging_context`."""
    return _log_context.set({**_log_context.get(), **kwargs})


def clear_logging_context(token: Optional[Token] = None):
    """Restore the context that was active before ``token`` was issued, or drop all fields."""
    if token is not None:
        _log_context.reset(token)
    else:
        _log_context.set({})


@contextmanager
def logging_context(**kwargs) -> Iterator[Dict[str, Any]]:
    """Attach context fields (e.g. ``run_id``) to log records inside the block."""
    token = set_logging_context(**kwargs)
    try:
        yield get_logging_context()
    finally:
        clear_logging_context(token)


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional one-off context fields."""
    logger.log(level, message, extra={"extra_fields": context})
