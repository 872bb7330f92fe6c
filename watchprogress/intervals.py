"""
Watched-interval value type and the merge algorithm.

A ``WatchedInterval`` is one contiguous span of the media timeline that the
viewer was exposed to.  The tracker appends intervals in the order they are
created and never reconciles them eagerly; ``merge`` derives the canonical,
disjoint view whenever one is needed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from .constants import ADJACENCY_TOLERANCE_SECONDS


@dataclass(frozen=True)
class WatchedInterval:
    """A ``[start, end]`` span of timeline, in seconds."""

    start: float
    end: float

    @property
    def length(self) -> float:
        return max(0.0, self.end - self.start)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def with_end(self, end: float) -> "WatchedInterval":
        return WatchedInterval(self.start, end)

    def to_dict(self) -> Dict[str, float]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatchedInterval":
        """Build an interval from its persisted shape.

        Raises:
            KeyError, TypeError, ValueError: When a bound is missing or
                not numeric.
        """
        return cls(float(data["start"]), float(data["end"]))


def merge(
    intervals: Iterable[WatchedInterval],
    tolerance: float = ADJACENCY_TOLERANCE_SECONDS,
) -> List[WatchedInterval]:
    """Coalesce overlapping or adjacent intervals into a minimal disjoint set.

    Two intervals are joined when the later one starts no more than
    *tolerance* seconds after the running interval ends.

    Args:
        intervals: Intervals in any order.
        tolerance: Adjacency tolerance (ε) in seconds.

    Returns:
        Disjoint intervals sorted by ``start``.  The input is not modified.
    """
    ordered = sorted(intervals, key=lambda i: i.start)
    if not ordered:
        return []

    merged: List[WatchedInterval] = []
    last = ordered[0]
    for current in ordered[1:]:
        if current.start <= last.end + tolerance:
            last = last.with_end(max(last.end, current.end))
        else:
            merged.append(last)
            last = current
    merged.append(last)
    return merged


def covered_seconds(merged: Iterable[WatchedInterval]) -> float:
    """Sum the lengths of an already merged interval sequence."""
    return sum(i.length for i in merged)


def prune_empty(intervals: Iterable[WatchedInterval]) -> List[WatchedInterval]:
    """Drop intervals with ``end <= start``."""
    return [i for i in intervals if not i.is_empty]
