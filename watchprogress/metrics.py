"""
Derived progress metrics — unique seconds watched and progress percentage.
"""

from dataclasses import dataclass
from typing import Dict, Iterable

from .constants import ADJACENCY_TOLERANCE_SECONDS
from .intervals import WatchedInterval, covered_seconds, merge


@dataclass(frozen=True)
class Metrics:
    unique_seconds_watched: float = 0.0
    progress_percent: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "unique_seconds_watched": self.unique_seconds_watched,
            "progress_percent": self.progress_percent,
        }


def recompute(
    intervals: Iterable[WatchedInterval],
    total_duration: float,
    tolerance: float = ADJACENCY_TOLERANCE_SECONDS,
) -> Metrics:
    """Derive metrics from the (unmerged) interval set.

    ``progress_percent`` is 0 while the duration is unknown and never
    leaves ``[0, 100]``.
    """
    unique = max(0.0, covered_seconds(merge(intervals, tolerance)))
    if total_duration and total_duration > 0:
        percent = min(100.0, unique / total_duration * 100)
    else:
        percent = 0.0
    return Metrics(unique_seconds_watched=unique, progress_percent=percent)
