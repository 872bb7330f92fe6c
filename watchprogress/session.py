"""
Session controller — one viewer's progress on one media resource.

``WatchSession`` owns the interval set (through the tracking state machine),
the derived metrics and the saved-session metadata.  It is driven by
playback notifications and user commands, and talks to the outside world
only through injected collaborators:

- a ``MediaElement`` (read position, seek / play / pause),
- a ``ProgressStore`` (save / load / erase the session record),
- a ``Prompter`` (confirmation dialogs and advisory notifications),
- a ``Scheduler`` (the delayed pause of the replay command).

Nothing in here is thread-safe; callers serialise access (see ``hub.py``).
"""

import time
from typing import Any, Callable, Dict, Optional, Protocol

from .config import command_settings, tracking_settings
from .constants import (
    MSG_ERASE_FAILED,
    MSG_RESET_CONFIRM,
    MSG_RESET_DONE,
    MSG_SAVE_FAILED,
    MSG_SAVED,
    NEVER_SAVED,
)
from .intervals import merge
from .media import MediaElement
from .metrics import Metrics, recompute
from .persistence import ProgressStore, SessionRecord
from .storage import StorageError
from .tracking import EventKind, PlaybackEvent, TrackingSettings, TrackingStateMachine
from .utils import describe_intervals, setup_logger, storage_key


class Prompter(Protocol):
    def confirm(self, prompt: str) -> bool: ...

    def notify(self, message: str) -> None: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class WatchSession:
    """Tracks, measures and persists watched intervals for one resource"""

    def __init__(
        self,
        resource: str,
        *,
        media: MediaElement,
        store: ProgressStore,
        prompter: Prompter,
        scheduler: Scheduler,
        config: Dict[str, Any] = None,
        clock: Callable[[], float] = time.monotonic,
        on_change: Callable[[Dict[str, Any]], None] = None,
    ):
        """
        Args:
            resource: Media resource identifier (URL or path).
            media: The media element being watched.
            store: Persistence adapter for session records.
            prompter: Confirmation / notification capability.
            scheduler: Deferred-callback capability for the replay command.
            config: Application configuration dict (defaults when omitted).
            clock: Monotonic clock used to stamp notifications.
            on_change: Called with a fresh snapshot after every state change.
        """
        self.config = config or {}
        debug = self.config.get("logging", {}).get("debug", False)
        self.logger = setup_logger("session", "session.log", debug=debug)

        self.resource = resource
        self.key = storage_key(resource)
        self.media = media
        self.store = store
        self.prompter = prompter
        self.scheduler = scheduler
        self._clock = clock
        self._on_change = on_change

        self.tolerance = tracking_settings(self.config)["adjacency_tolerance_seconds"]
        commands = command_settings(self.config)
        self.midpoint_fraction = commands["midpoint_fraction"]
        self.replay_pause_delay = commands["replay_pause_delay_seconds"]

        self.tracker = TrackingStateMachine(TrackingSettings.from_config(self.config), debug=debug)
        self.total_duration = 0.0
        self.metrics = Metrics()
        self.session_count = 0
        self.last_saved = NEVER_SAVED
        self._pending_pause: Optional[Cancellable] = None
        self._pause_generation = 0
        self._pending_resume: Optional[float] = None

    # ── Read-only surface ────────────────────────────────────────

    @property
    def intervals(self):
        return self.tracker.intervals

    @property
    def merged_intervals(self):
        return merge(self.tracker.intervals, self.tolerance)

    @property
    def current_position(self) -> float:
        if self.media.ready:
            return float(self.media.current_time)
        return self.tracker.context.last_known_position

    def snapshot(self) -> Dict[str, Any]:
        """Everything the presentation layer renders."""
        merged = self.merged_intervals
        return {
            "resource": self.resource,
            "intervals": [i.to_dict() for i in merged],
            "intervals_text": describe_intervals(merged),
            "duration": self.total_duration,
            "current_position": self.current_position,
            "unique_seconds_watched": self.metrics.unique_seconds_watched,
            "progress_percent": self.metrics.progress_percent,
            "session_count": self.session_count,
            "last_saved": self.last_saved,
            "is_tracking": self.tracker.is_tracking,
        }

    # ── Lifecycle ────────────────────────────────────────────────

    def mount(self) -> bool:
        """Restore any saved progress for this resource."""
        self.logger.info("Session opened for %s", self.key)
        return self.load()

    def unmount(self) -> None:
        """Teardown: cancel pending callbacks and save if anything was watched."""
        self._cancel_pending_pause()
        if self.tracker.intervals:
            self._save(notify=False)
        self.logger.info("Session closed for %s", self.key)

    # ── Media notifications ──────────────────────────────────────

    def on_media_ready(self, duration: float) -> None:
        """Metadata loaded: adopt the total duration."""
        self.total_duration = max(0.0, float(duration or 0))
        self._recompute()
        if self._pending_resume is not None:
            position, self._pending_resume = self._pending_resume, None
            self.media.seek(position)
        self._publish()

    def on_playback_event(
        self,
        kind: str,
        position: float,
        timestamp: float = None,
        playing: bool = None,
    ) -> bool:
        """Feed one playback notification to the tracker.

        Returns:
            True if the interval set changed.

        Raises:
            ValueError: If *kind* is not a known notification.
        """
        event = PlaybackEvent(
            kind=EventKind(kind),
            position=float(position),
            timestamp=self._clock() if timestamp is None else float(timestamp),
            playing=(not self.media.paused) if playing is None else bool(playing),
        )
        result = self.tracker.dispatch(event)
        if result.changed:
            self._recompute()
            self._publish()
        return result.changed

    # ── User commands ────────────────────────────────────────────

    def save(self) -> bool:
        """Persist the current state.  Failures are reported, not raised."""
        return self._save(notify=True)

    def load(self) -> bool:
        """Replace the in-memory state with the saved record, if any."""
        record = self.store.load(self.key)
        if record is None:
            self.logger.info("No saved progress for %s", self.key)
            return False

        self.tracker.restore(record.intervals, record.last_position)
        self.session_count = record.session_count
        self.last_saved = record.last_saved
        if self.total_duration <= 0 and record.duration > 0:
            self.total_duration = record.duration
        self._recompute()

        if record.last_position > 0:
            if self.media.ready:
                self.media.seek(record.last_position)
            else:
                self._pending_resume = record.last_position
        self.logger.info(
            "Loaded %s: %d interval(s), resume at %.1fs",
            self.key,
            len(record.intervals),
            record.last_position,
        )
        self._publish()
        return True

    def reset(self) -> bool:
        """Clear all progress after the user confirms."""
        if not self.prompter.confirm(MSG_RESET_CONFIRM):
            self.logger.info("Reset of %s cancelled by user", self.key)
            return False

        self._cancel_pending_pause()
        self._pending_resume = None
        self.tracker.clear()
        self.session_count = 0
        self.last_saved = NEVER_SAVED

        erased = True
        try:
            self.store.erase(self.key)
        except StorageError as e:
            erased = False
            self.logger.error("Could not erase %s: %s", self.key, e)
            self.prompter.notify(MSG_ERASE_FAILED.format(error=e))

        self.media.seek(0)
        self._recompute()
        if erased:
            self.prompter.notify(MSG_RESET_DONE)
        self._publish()
        return True

    def jump_to_midpoint(self) -> Optional[float]:
        """Seek to the middle of the media (skip test).  Returns the target."""
        if self.total_duration <= 0:
            return None
        target = self.total_duration * self.midpoint_fraction
        self.media.seek(target)
        return target

    def replay_from_start(self) -> None:
        """Restart playback and pause automatically after a fixed delay (rewatch test)."""
        self._cancel_pending_pause()
        self.media.seek(0)
        self.media.play()
        if not self.media.ready:
            return
        generation = self._pause_generation
        self._pending_pause = self.scheduler.call_later(
            self.replay_pause_delay, lambda: self._auto_pause(generation)
        )

    # ── Internals ────────────────────────────────────────────────

    def _auto_pause(self, generation: int) -> None:
        # A timer that fired while being cancelled must not touch a newer replay.
        if generation != self._pause_generation:
            return
        self._pending_pause = None
        if self.media.ready and not self.media.paused:
            self.logger.debug("Replay window elapsed, pausing %s", self.key)
            self.media.pause()

    def _cancel_pending_pause(self) -> None:
        self._pause_generation += 1
        if self._pending_pause is not None:
            self._pending_pause.cancel()
            self._pending_pause = None

    def _save(self, *, notify: bool) -> bool:
        record = SessionRecord(
            intervals=self.tracker.intervals,
            last_position=self.current_position,
            duration=self.total_duration,
            session_count=self.session_count,
            last_saved=self.last_saved,
        )
        try:
            stored = self.store.save(record, self.key)
        except StorageError as e:
            self.logger.error("Save of %s failed: %s", self.key, e)
            if notify:
                self.prompter.notify(MSG_SAVE_FAILED.format(error=e))
            return False

        self.session_count = stored.session_count
        self.last_saved = stored.last_saved
        if notify:
            self.prompter.notify(MSG_SAVED)
        self._publish()
        return True

    def _recompute(self) -> None:
        self.metrics = recompute(self.tracker.intervals, self.total_duration, self.tolerance)

    def _publish(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())
