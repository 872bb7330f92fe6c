"""Session record persistence on top of a key-value storage medium."""

import json
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .constants import LAST_SAVED_FORMAT, NEVER_SAVED
from .intervals import WatchedInterval
from .storage import KeyValueStore, StorageError
from .utils import setup_logger


class CorruptRecordError(ValueError):
    """Raised when a stored record cannot be decoded."""


@dataclass
class SessionRecord:
    """Everything persisted for one media resource."""

    intervals: List[WatchedInterval] = field(default_factory=list)
    last_position: float = 0.0
    duration: float = 0.0
    session_count: int = 0
    last_saved: str = NEVER_SAVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intervals": [i.to_dict() for i in self.intervals],
            "lastPosition": self.last_position,
            "duration": self.duration,
            "sessionCount": self.session_count,
            "lastSaved": self.last_saved,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SessionRecord":
        """Decode the persisted JSON shape.

        Missing optional fields fall back to their defaults and intervals
        with ``end < start`` are dropped.

        Raises:
            CorruptRecordError: If the payload does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise CorruptRecordError(f"Expected an object, got {type(data).__name__}")
        raw_intervals = data.get("intervals") or []
        if not isinstance(raw_intervals, list):
            raise CorruptRecordError("'intervals' must be a list")
        try:
            intervals = [WatchedInterval.from_dict(item) for item in raw_intervals]
            for interval in intervals:
                _finite(interval.start, "intervals")
                _finite(interval.end, "intervals")
            session_count = int(_finite(data.get("sessionCount") or 0, "sessionCount"))
            record = cls(
                intervals=[i for i in intervals if i.end >= i.start],
                last_position=_finite(data.get("lastPosition") or 0, "lastPosition"),
                duration=_finite(data.get("duration") or 0, "duration"),
                session_count=max(0, session_count),
                last_saved=str(data.get("lastSaved") or NEVER_SAVED),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise CorruptRecordError(f"Malformed progress record: {e}") from e
        return record


def _finite(value: Any, name: str) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"'{name}' must be finite, got {value!r}")
    return number


class ProgressStore:
    """Save, load and erase ``SessionRecord`` values keyed per media resource."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self._now = now
        self.logger = setup_logger("persistence", "persistence.log")

    def save(self, record: SessionRecord, key: str) -> SessionRecord:
        """Overwrite the record at *key*.

        The stored copy carries an incremented ``session_count`` and a fresh
        ``last_saved`` stamp; it is returned so the caller can adopt both.

        Raises:
            StorageError: If the medium rejects the write.
        """
        stored = replace(
            record,
            intervals=list(record.intervals),
            session_count=record.session_count + 1,
            last_saved=self._now().strftime(LAST_SAVED_FORMAT),
        )
        payload = json.dumps(stored.to_dict())
        self.store.set(key, payload)
        self.logger.info(
            "Saved %s: %d interval(s), session #%d", key, len(stored.intervals), stored.session_count
        )
        return stored

    def load(self, key: str) -> Optional[SessionRecord]:
        """Return the record at *key*, or ``None`` if absent or unreadable."""
        try:
            raw = self.store.get(key)
        except StorageError as e:
            self.logger.warning("Could not read %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return SessionRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, RecursionError, CorruptRecordError) as e:
            self.logger.warning("Ignoring corrupt progress record %s: %s", key, e)
            return None

    def erase(self, key: str) -> bool:
        """Delete the record at *key*.

        Raises:
            StorageError: If the medium rejects the delete.
        """
        removed = self.store.delete(key)
        if removed:
            self.logger.info("Erased %s", key)
        return removed
