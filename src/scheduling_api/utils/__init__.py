"""Utility modules."""

from scheduling_api.utils.logging import get_logger, log_error, log_request, setup_logging
from scheduling_api.utils.time import ensure_utc, utcnow

__all__ = [
    "get_logger",
    "log_error",
    "log_request",
    "setup_logging",
    "ensure_utc",
    "utcnow",
]
