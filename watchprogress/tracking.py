"""
Tracking state machine — turns playback notifications into watched intervals.

The machine has two states, *Idle* and *Tracking*.  All state lives in one
immutable ``TrackerState`` value (the interval set plus a ``TrackingContext``)
and every notification is handled by the pure ``transition`` function, which
returns the next state together with the side effects the caller must run.
``TrackingStateMachine`` is the thin stateful shell the session controller
owns.

Rules:
  1. *play* opens a zero-length interval at the current position
     (ignored while seeking or already tracking).
  2. *timeupdate* is throttled by wall-clock time.  A forward delta above the
     jump threshold, or any backward delta, closes the active interval at the
     last known position and opens a new one, so skipped ranges are never
     credited.  Otherwise the active interval is extended.
  3. *pause*, *seeking* and *ended* close the active interval and prune
     intervals with ``end <= start``.
  4. *seeked* clears the seeking flag and re-opens an interval when the media
     is still playing.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .config import tracking_settings
from .constants import JUMP_THRESHOLD_SECONDS, UPDATE_INTERVAL_MS
from .intervals import WatchedInterval, prune_empty
from .utils import setup_logger


class EventKind(str, Enum):
    """Playback notifications understood by the tracker."""

    PLAY = "play"
    PAUSE = "pause"
    SEEKING = "seeking"
    SEEKED = "seeked"
    TIME_UPDATE = "timeupdate"
    ENDED = "ended"


class Effect(str, Enum):
    """Side effects requested by a transition."""

    RECOMPUTE_METRICS = "recompute_metrics"


@dataclass(frozen=True)
class PlaybackEvent:
    """A playback notification forwarded from the media element."""

    kind: EventKind
    position: float
    timestamp: float  # monotonic wall-clock seconds
    playing: bool = False


@dataclass(frozen=True)
class TrackingContext:
    """Bookkeeping for the active interval."""

    is_tracking: bool = False
    active_index: Optional[int] = None  # valid only while is_tracking
    last_known_position: float = 0.0
    is_seeking: bool = False
    last_processed_update: Optional[float] = None


@dataclass(frozen=True)
class TrackerState:
    """The interval set (creation order) and its tracking context."""

    intervals: Tuple[WatchedInterval, ...] = ()
    context: TrackingContext = field(default_factory=TrackingContext)


@dataclass(frozen=True)
class TrackingSettings:
    jump_threshold: float = JUMP_THRESHOLD_SECONDS
    update_interval: float = UPDATE_INTERVAL_MS / 1000.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TrackingSettings":
        settings = tracking_settings(config)
        return cls(
            jump_threshold=settings["jump_threshold_seconds"],
            update_interval=settings["update_interval_ms"] / 1000.0,
        )


@dataclass(frozen=True)
class Transition:
    """Result of handling one event."""

    state: TrackerState
    effects: Tuple[Effect, ...] = ()
    reason: str = "ignored"

    @property
    def changed(self) -> bool:
        return Effect.RECOMPUTE_METRICS in self.effects


def should_process(now: float, last_processed: Optional[float], interval: float) -> bool:
    """Return True if a time update arriving at *now* passes the throttle."""
    if last_processed is None:
        return True
    return now - last_processed >= interval


# ── Transition function ──────────────────────────────────────────


def transition(
    state: TrackerState, event: PlaybackEvent, settings: TrackingSettings
) -> Transition:
    """Compute the next tracker state for *event*.  Pure; *state* is untouched."""
    kind = EventKind(event.kind)
    if kind is EventKind.PLAY:
        return _on_play(state, event)
    if kind is EventKind.TIME_UPDATE:
        return _on_time_update(state, event, settings)
    if kind in (EventKind.PAUSE, EventKind.ENDED):
        return _on_stop(state, event, kind.value)
    if kind is EventKind.SEEKING:
        return _on_seeking(state, event, settings)
    return _on_seeked(state, event, settings)


def _on_play(state: TrackerState, event: PlaybackEvent) -> Transition:
    ctx = state.context
    if ctx.is_tracking or ctx.is_seeking:
        return Transition(state)
    return Transition(_open(state, event.position), (Effect.RECOMPUTE_METRICS,), "open")


def _on_time_update(
    state: TrackerState, event: PlaybackEvent, settings: TrackingSettings
) -> Transition:
    ctx = state.context
    if not should_process(event.timestamp, ctx.last_processed_update, settings.update_interval):
        return Transition(state, reason="throttled")

    position = event.position
    stamped = replace(ctx, last_processed_update=event.timestamp)

    if not ctx.is_tracking or ctx.active_index is None:
        idle = replace(stamped, last_known_position=position)
        return Transition(TrackerState(state.intervals, idle), reason="idle")

    delta = position - ctx.last_known_position
    if delta > settings.jump_threshold or delta < 0:
        reason = "forward_skip" if delta > 0 else "rewind"
        closed = _close(TrackerState(state.intervals, stamped), ctx.last_known_position)
        reopened = _open(closed, position)
        return Transition(reopened, (Effect.RECOMPUTE_METRICS,), reason)

    intervals = list(state.intervals)
    intervals[ctx.active_index] = intervals[ctx.active_index].with_end(position)
    extended = replace(stamped, last_known_position=position)
    return Transition(
        TrackerState(tuple(intervals), extended), (Effect.RECOMPUTE_METRICS,), "extend"
    )


def _on_stop(state: TrackerState, event: PlaybackEvent, reason: str) -> Transition:
    if not state.context.is_tracking:
        ctx = replace(state.context, last_known_position=event.position)
        return Transition(TrackerState(state.intervals, ctx))
    return Transition(_close(state, event.position), (Effect.RECOMPUTE_METRICS,), reason)


def _on_seeking(
    state: TrackerState, event: PlaybackEvent, settings: TrackingSettings
) -> Transition:
    ctx = state.context
    if not ctx.is_tracking:
        return Transition(TrackerState(state.intervals, replace(ctx, is_seeking=True)))
    end = _seek_close_position(ctx, event.position, settings)
    closed = _close(state, end)
    seeking = replace(closed.context, is_seeking=True)
    return Transition(
        TrackerState(closed.intervals, seeking), (Effect.RECOMPUTE_METRICS,), "seeking"
    )


def _on_seeked(
    state: TrackerState, event: PlaybackEvent, settings: TrackingSettings
) -> Transition:
    effects: Tuple[Effect, ...] = ()
    if state.context.is_tracking:
        # No seeking notification was seen for this seek.
        end = _seek_close_position(state.context, event.position, settings)
        state = _close(state, end)
        effects = (Effect.RECOMPUTE_METRICS,)

    ctx = replace(state.context, is_seeking=False, last_known_position=event.position)
    state = TrackerState(state.intervals, ctx)
    if event.playing:
        return Transition(_open(state, event.position), (Effect.RECOMPUTE_METRICS,), "resume")
    return Transition(state, effects, "seeked")


# ── Helpers ──────────────────────────────────────────────────────


def _open(state: TrackerState, position: float) -> TrackerState:
    intervals = state.intervals + (WatchedInterval(position, position),)
    ctx = replace(
        state.context,
        is_tracking=True,
        active_index=len(intervals) - 1,
        last_known_position=position,
    )
    return TrackerState(intervals, ctx)


def _close(state: TrackerState, position: float) -> TrackerState:
    ctx = state.context
    intervals = list(state.intervals)
    if ctx.is_tracking and ctx.active_index is not None:
        intervals[ctx.active_index] = intervals[ctx.active_index].with_end(position)
    closed = replace(ctx, is_tracking=False, active_index=None, last_known_position=position)
    return TrackerState(tuple(prune_empty(intervals)), closed)


def _seek_close_position(
    ctx: TrackingContext, position: float, settings: TrackingSettings
) -> float:
    # The seeking notification reports the seek target; only trust it when it
    # reads as continuous playback from the last known position.
    delta = position - ctx.last_known_position
    if 0 <= delta <= settings.jump_threshold:
        return position
    return ctx.last_known_position


# ── Stateful shell ───────────────────────────────────────────────


class TrackingStateMachine:
    """Owns the current ``TrackerState`` and applies events to it."""

    def __init__(self, settings: TrackingSettings = None, *, debug: bool = False):
        self.settings = settings or TrackingSettings()
        self.logger = setup_logger("tracking", "tracking.log", debug=debug)
        self._state = TrackerState()

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def context(self) -> TrackingContext:
        return self._state.context

    @property
    def intervals(self) -> List[WatchedInterval]:
        return list(self._state.intervals)

    @property
    def is_tracking(self) -> bool:
        return self._state.context.is_tracking

    def dispatch(self, event: PlaybackEvent) -> Transition:
        """Apply *event* and return the transition that was taken."""
        result = transition(self._state, event, self.settings)
        if result.reason in ("forward_skip", "rewind"):
            self.logger.debug(
                "Discontinuity (%s): %.2fs -> %.2fs",
                result.reason,
                self._state.context.last_known_position,
                event.position,
            )
        self._state = result.state
        return result

    def restore(self, intervals: List[WatchedInterval], position: float) -> None:
        """Replace the interval set and return to Idle at *position*."""
        self._state = TrackerState(
            tuple(intervals), TrackingContext(last_known_position=position)
        )

    def clear(self) -> None:
        self._state = TrackerState()
