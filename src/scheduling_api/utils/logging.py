"""Logging configuration for the Scheduling API.

Every line carries the ambient scheduling context: the request id, the
acting user and role once a bearer token has been resolved, and the
upload or appointment a service is working on.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

from scheduling_api.config import get_settings

CONTEXT_FIELDS = ("request_id", "user_id", "role", "upload_id", "appointment_id")

_log_context: ContextVar[Dict[str, str]] = ContextVar("log_context", default={})

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "extra_fields", "actor", "target", *CONTEXT_FIELDS}

_logger: Optional[logging.Logger] = None


def bind_log_context(**fields: Optional[str]) -> None:
    """Add fields to the context of the current request or task."""
    context = dict(_log_context.get())
    context.update({key: str(value) for key, value in fields.items() if value is not None})
    _log_context.set(context)


@contextmanager
def log_context(**fields: Optional[str]) -> Iterator[None]:
    """Bind fields for the duration of a block."""
    token = _log_context.set(dict(_log_context.get()))
    try:
        bind_log_context(**fields)
        yield
    finally:
        _log_context.reset(token)


def get_log_context() -> Dict[str, str]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


def set_request_id(request_id: str) -> None:
    """Start a fresh context for an incoming request."""
    _log_context.set({"request_id": request_id})


def get_request_id() -> Optional[str]:
    return _log_context.get().get("request_id")


def bind_actor(user_id: str, role: str) -> None:
    """Record who is acting in the current request."""
    bind_log_context(user_id=user_id, role=role)


def _actor(context: Dict[str, str]) -> str:
    if "user_id" not in context:
        return "anonymous"
    return f"{context['user_id']}:{context.get('role', '?')}"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": f"{record.module}:{record.lineno}",
        }
        log_data.update(_log_context.get())
        log_data.update(getattr(record, "extra_fields", {}))
        log_data.update(
            {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        )
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable lines for development: ``[request] actor message``."""

    def __init__(self):
        super().__init__(
            fmt=(
                "%(asctime)s %(levelname)-7s %(name)s "
                "[%(request_id)s] %(actor)s%(target)s %(message)s"
            ),
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        context = _log_context.get()
        record.request_id = context.get("request_id", "-")
        record.actor = _actor(context)
        target = context.get("upload_id") or context.get("appointment_id")
        record.target = f" ({target})" if target else ""
        return super().format(record)


def setup_logging() -> logging.Logger:
    """Configure the service logger once; JSON in production."""
    global _logger

    if _logger is not None:
        return _logger

    settings = get_settings()
    level = getattr(logging, settings.log_level)

    logger = logging.getLogger("scheduling_api")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if settings.is_production else StandardFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )
    logging.getLogger("passlib").setLevel(logging.ERROR)

    _logger = logger
    logger.info(
        f"Logging configured: level={settings.log_level}, "
        f"environment={settings.environment.value}"
    )
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return logging.getLogger(f"scheduling_api.{name}")
    return logging.getLogger("scheduling_api")


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    user_id: Optional[str] = None,
    role: Optional[str] = None,
) -> None:
    """Log a finished HTTP request together with the acting user."""
    context = _log_context.get()
    if user_id:
        context = {**context, "user_id": user_id, "role": role or "?"}
    get_logger("http").info(
        f"{method} {path} - {status_code} - {duration_ms:.2f}ms - {_actor(context)}",
        extra={
            "extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "user_id": context.get("user_id"),
                "role": context.get("role"),
            }
        },
    )


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an error with its traceback and request details."""
    get_logger("error").error(
        f"{type(error).__name__}: {error}",
        exc_info=error,
        extra={"extra_fields": {"error_type": type(error).__name__, **(context or {})}},
    )
