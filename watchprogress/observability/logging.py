"""
Structured JSON logging with per-thread context.

Every log line is a single JSON object with guaranteed keys: ``timestamp``,
``level``, ``logger``, ``message``, ``service`` and ``version``, plus any
context attached with ``set_log_context`` (``resource``, ``sid``, ...) and
well-known ``extra`` fields.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import APP_VERSION, LOG_BACKUP_COUNT, LOG_MAX_BYTES

_context = threading.local()

# Default service name, overridable via LOG_SERVICE_NAME env var
SERVICE_NAME: str = os.environ.get("LOG_SERVICE_NAME", "watchprogress")


def set_log_context(**kwargs: Any) -> None:
    """Attach key-value pairs to the current thread's log context.

    Typical usage inside a socket handler::

        set_log_context(resource=resource, sid=request.sid)
    """
    if not hasattr(_context, "data"):
        _context.data = {}
    _context.data.update(kwargs)


def clear_log_context() -> None:
    """Remove all context from the current thread."""
    _context.data = {}


def get_log_context() -> Dict[str, Any]:
    """Return a *copy* of the current thread's context dict."""
    return dict(getattr(_context, "data", {}))


class _JsonFormatter(logging.Formatter):
    """Emit each record as a single-line JSON object."""

    # Keys that are promoted from ``extra`` to the top-level JSON.
    _PROMOTE_KEYS = frozenset(
        {
            "resource",
            "storage_key",
            "event_kind",
            "position",
            "session_count",
            "error_type",
            "fingerprint",
            "method",
            "path",
            "sid",
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
            "version": APP_VERSION,
            "thread": record.threadName,
        }

        if record.levelno >= logging.ERROR:
            entry["func"] = record.funcName
            entry["line"] = record.lineno

        ctx = get_log_context()
        if ctx:
            entry.update(ctx)

        for key in self._PROMOTE_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
            entry["error_type"] = record.exc_info[0].__name__

        return json.dumps(entry, default=str, ensure_ascii=False)


class _DevFormatter(logging.Formatter):
    """Human-readable console output for local development."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        resource = get_log_context().get("resource", "")
        prefix = f"[{resource}] " if resource else ""
        base = f"{ts} {record.levelname:<8} {record.name} {prefix}{record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def setup_structured_logger(
    name: str,
    log_file: str,
    *,
    level: Optional[int] = None,
    debug: bool = False,
) -> logging.Logger:
    """Create (or retrieve) a structured JSON logger.

    Signature mirrors ``utils.setup_logger`` so callers can switch with a
    one-line import change.  The console uses JSON when ``LOG_FORMAT=json``.
    """
    if level is None:
        level = logging.DEBUG if debug else logging.INFO

    base_dir = Path(__file__).parent.parent.parent
    log_path = base_dir / "logs" / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        return logger

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(_JsonFormatter())

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    if os.environ.get("LOG_FORMAT", "").lower() == "json":
        console_handler.setFormatter(_JsonFormatter())
    else:
        console_handler.setFormatter(_DevFormatter())

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
