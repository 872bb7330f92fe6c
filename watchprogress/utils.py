"""
Utility functions for the watch progress tracker
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable
from urllib.parse import urlsplit

from dotenv import load_dotenv

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_MAX_BYTES,
    MSG_NO_INTERVALS,
    STORAGE_KEY_PREFIX,
)
from .config import load_config, validate_config, ConfigError  # noqa: F401 (re-export)

load_dotenv()

DEFAULT_DATA_ROOT = Path.home() / ".watchprogress"


def get_data_dir() -> Path:
    """Return the data directory (database) from WATCHPROGRESS_DATA or the default."""
    d = Path(os.environ.get("WATCHPROGRESS_DATA", str(DEFAULT_DATA_ROOT)))
    d.mkdir(parents=True, exist_ok=True)
    return d


def setup_logger(name: str, log_file: str, level=None, debug: bool = False) -> logging.Logger:
    """
    Setup a logger with file and console output

    Args:
        name: Logger name
        log_file: Log file path
        level: Logging level (overrides debug flag if provided)
        debug: If True, set level to DEBUG

    Returns:
        Configured logger
    """
    if level is None:
        level = logging.DEBUG if debug else logging.INFO

    base_dir = Path(__file__).parent.parent
    log_path = base_dir / "logs" / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers
    if logger.handlers:
        # Update existing handler levels if debug mode changed
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    # File handler with rotation
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    file_handler.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    # Formatter: include function name in debug mode
    if debug:
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    else:
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def resource_identifier(resource: str) -> str:
    """
    Derive the short identifier of a media resource: its trailing path segment.

    Query strings and fragments are ignored and trailing slashes skipped.
    Falls back to the whole (stripped) identifier when there is no path.

    Args:
        resource: URL or filesystem path of the media

    Returns:
        Identifier string (e.g. ``"BigBuckBunny.mp4"``)
    """
    resource = resource.strip()
    parts = urlsplit(resource)
    path = parts.path if (parts.scheme or parts.netloc) else resource.split("?")[0].split("#")[0]
    segments = [s for s in path.replace("\\", "/").split("/") if s]
    if segments:
        return segments[-1]
    return parts.netloc or resource


def storage_key(resource: str) -> str:
    """Return the storage key under which a resource's progress is kept."""
    return f"{STORAGE_KEY_PREFIX}{resource_identifier(resource)}"


def format_time(seconds: float) -> str:
    """
    Format a playback position as ``m:ss`` (``h:mm:ss`` past one hour)

    Args:
        seconds: Position in seconds

    Returns:
        Formatted time string
    """
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def describe_intervals(intervals: Iterable) -> str:
    """Render merged intervals as ``[0:00 - 0:10], [0:50 - 0:55]``."""
    rendered = [f"[{format_time(i.start)} - {format_time(i.end)}]" for i in intervals]
    if not rendered:
        return MSG_NO_INTERVALS
    return ", ".join(rendered)
