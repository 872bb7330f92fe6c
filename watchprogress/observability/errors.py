"""
Centralised error tracking for the web boundary.

Captures unexpected exceptions raised by Flask routes and socket handlers,
enriches them with the current log context, and:

1. Logs them via the structured logger.
2. Keeps them in a bounded in-memory ring buffer.
3. Optionally forwards them to Sentry (``SENTRY_DSN`` env var, requires the
   ``sentry`` extra).
"""

import os
import sys
import threading
import traceback
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .logging import get_log_context, setup_structured_logger

# Maximum number of recent errors kept in memory
_MAX_ERROR_BUFFER = 100


@dataclass
class ErrorRecord:
    """A single captured error event."""

    timestamp: str
    error_type: str
    message: str
    traceback: str
    context: Dict[str, Any] = field(default_factory=dict)
    fingerprint: str = ""  # for dedup grouping

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ErrorTracker:
    """Singleton that captures, counts and stores errors.

    Usage::

        tracker = ErrorTracker()
        tracker.install_flask(app)

        try:
            handle_socket_message()
        except Exception as exc:
            tracker.capture_exception(exc, extra={"event": "media_event"})
    """

    _instance: Optional["ErrorTracker"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ErrorTracker":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._buffer: deque = deque(maxlen=_MAX_ERROR_BUFFER)
        self._counts: Dict[str, int] = {}
        self._logger = setup_structured_logger("error_tracker", "errors.log")
        self._sentry_dsn = os.environ.get("SENTRY_DSN", "")

        if self._sentry_dsn:
            try:
                import sentry_sdk

                sentry_sdk.init(dsn=self._sentry_dsn, traces_sample_rate=0.1)
                self._logger.info("Sentry SDK initialised")
            except ImportError:
                self._logger.warning("SENTRY_DSN set but sentry-sdk not installed")
                self._sentry_dsn = ""

    def install_flask(self, app: Flask) -> None:
        """Register a Flask error handler that captures unhandled exceptions."""

        @app.errorhandler(Exception)
        def _handle_exception(exc: Exception):
            if isinstance(exc, HTTPException):
                return exc
            self.capture_exception(exc)
            return jsonify({"error": "Internal Server Error"}), 500

    def capture_exception(
        self,
        exc: Optional[BaseException] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[ErrorRecord]:
        """Capture an exception with its context.

        Args:
            exc: The exception. If ``None``, uses ``sys.exc_info()``.
            extra: Additional context to attach.

        Returns:
            The ``ErrorRecord``, or ``None`` if nothing to capture.
        """
        if exc is None:
            exc_info = sys.exc_info()
            if exc_info[0] is None:
                return None
            exc = exc_info[1]
        else:
            exc_info = (type(exc), exc, exc.__traceback__)

        ctx = get_log_context()
        if extra:
            ctx.update(extra)

        record = ErrorRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            error_type=type(exc).__name__,
            message=str(exc),
            traceback="".join(traceback.format_exception(*exc_info)),
            context=ctx,
            fingerprint=f"{type(exc).__name__}:{_extract_location(exc_info)}",
        )

        self._buffer.append(record)
        self._counts[record.fingerprint] = self._counts.get(record.fingerprint, 0) + 1

        self._logger.error(
            "Captured %s: %s",
            record.error_type,
            record.message,
            extra={"error_type": record.error_type, "fingerprint": record.fingerprint},
        )

        if self._sentry_dsn:
            import sentry_sdk

            sentry_sdk.capture_exception(exc)

        return record

    def recent_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return the most recent errors as dicts, newest first."""
        items = list(self._buffer)[-limit:]
        items.reverse()
        return [e.to_dict() for e in items]

    def error_summary(self) -> Dict[str, Any]:
        """Return dedup counts and totals."""
        return {
            "total_captured": sum(self._counts.values()),
            "unique_errors": len(self._counts),
        }

    @classmethod
    def reset(cls) -> None:
        """Reset singleton (for testing)"""
        with cls._lock:
            cls._instance = None


def _extract_location(exc_info) -> str:
    """Extract file:line from the innermost traceback frame."""
    tb = exc_info[2]
    if tb is None:
        return "unknown"
    while tb.tb_next:
        tb = tb.tb_next
    return f"{tb.tb_frame.f_code.co_filename}:{tb.tb_lineno}"
