"""
Watch Progress - tracks which parts of a video were actually watched
"""

__version__ = "0.4.0"

from .hub import SessionHub
from .intervals import WatchedInterval, merge
from .metrics import Metrics, recompute
from .persistence import ProgressStore, SessionRecord
from .session import WatchSession
from .storage import MemoryKeyValueStore, SqliteKeyValueStore, StorageError
from .tracking import TrackingStateMachine

__all__ = [
    "WatchedInterval",
    "merge",
    "Metrics",
    "recompute",
    "TrackingStateMachine",
    "ProgressStore",
    "SessionRecord",
    "StorageError",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "WatchSession",
    "SessionHub",
]
