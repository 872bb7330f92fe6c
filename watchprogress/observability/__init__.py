"""
Observability package — structured logging and error tracking.

Provides:
- ``setup_structured_logger``: JSON-formatted logging with per-thread context
- ``ErrorTracker``: Centralised error capture at the web boundary
"""

from .errors import ErrorTracker
from .logging import clear_log_context, set_log_context, setup_structured_logger

__all__ = [
    "setup_structured_logger",
    "set_log_context",
    "clear_log_context",
    "ErrorTracker",
]
