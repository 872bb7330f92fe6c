"""
Test fixtures and configuration for pytest
"""

from datetime import datetime
from pathlib import Path

import pytest

from watchprogress.persistence import ProgressStore
from watchprogress.session import WatchSession
from watchprogress.storage import MemoryKeyValueStore, StorageError

# ── Real-data write guard ────────────────────────────────────────
# Prevent any test from accidentally creating the real data directory.
# Tests must use tmp_path instead.

_REAL_DATA = Path.home() / ".watchprogress"
_original_mkdir = Path.mkdir


def _guarded_mkdir(self, *args, **kwargs):
    """Raise immediately if a test tries to mkdir inside the real data dir."""
    try:
        resolved = self.resolve()
    except OSError:
        resolved = self
    if str(resolved).startswith(str(_REAL_DATA)):
        raise RuntimeError(
            f"Test attempted to create directory in real data root: {self}. "
            "Use tmp_path instead."
        )
    return _original_mkdir(self, *args, **kwargs)


@pytest.fixture(autouse=True)
def _block_real_data_writes(request, tmp_path, monkeypatch):
    """Auto-use guard: redirect WATCHPROGRESS_DATA to a temp dir and block
    any accidental mkdir under the real data root.  Integration tests are exempt.
    """
    if request.node.get_closest_marker("integration"):
        yield
        return
    monkeypatch.setenv("WATCHPROGRESS_DATA", str(tmp_path / "data"))
    monkeypatch.setattr(Path, "mkdir", _guarded_mkdir)
    yield


# ── Collaborator fakes ───────────────────────────────────────────


class FakeMedia:
    """In-process stand-in for a media element."""

    def __init__(self, ready: bool = True):
        self.ready = ready
        self.paused = True
        self.current_time = 0.0
        self.commands = []

    def seek(self, position):
        if not self.ready:
            return
        self.commands.append(("seek", position))
        self.current_time = position

    def play(self):
        if not self.ready:
            return
        self.commands.append(("play",))
        self.paused = False

    def pause(self):
        if not self.ready:
            return
        self.commands.append(("pause",))
        self.paused = True


class RecordingPrompter:
    """Answers confirmations with a fixed value and records notifications."""

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.prompts = []
        self.messages = []

    def confirm(self, prompt):
        self.prompts.append(prompt)
        return self.answer

    def notify(self, message):
        self.messages.append(message)


class _Handle:
    def __init__(self, due, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deferred callbacks that only run when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = _Handle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def advance(self, seconds):
        self.now += seconds
        due = [h for h in self.handles if h.due <= self.now and not h.cancelled]
        self.handles = [h for h in self.handles if h not in due]
        for handle in due:
            handle.callback()

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]


class FailingKeyValueStore:
    """A storage medium that rejects every operation."""

    def get(self, key):
        raise StorageError("storage unavailable")

    def set(self, key, value):
        raise StorageError("quota exceeded")

    def delete(self, key):
        raise StorageError("storage unavailable")


class Player:
    """Drives a session the way a browser media element would.

    Media time and wall-clock time advance together, one time update
    every *step* seconds.
    """

    def __init__(self, session, media, step: float = 0.3):
        self.session = session
        self.media = media
        self.step = step
        self.clock = 1000.0

    def play(self, position=None):
        if position is not None:
            self.media.current_time = position
        self.media.paused = False
        self.session.on_playback_event("play", self.media.current_time, timestamp=self.clock)

    def advance_to(self, target):
        position = self.media.current_time
        while position < target:
            position = min(target, round(position + self.step, 6))
            self.clock += self.step
            self.media.current_time = position
            self.session.on_playback_event("timeupdate", position, timestamp=self.clock)

    def pause(self):
        self.media.paused = True
        self.session.on_playback_event("pause", self.media.current_time, timestamp=self.clock)

    def ended(self):
        self.media.paused = True
        self.session.on_playback_event("ended", self.media.current_time, timestamp=self.clock)

    def seek(self, target):
        self.media.current_time = target
        self.session.on_playback_event("seeking", target, timestamp=self.clock)
        self.session.on_playback_event("seeked", target, timestamp=self.clock)


# ── Fixtures ─────────────────────────────────────────────────────

FIXED_NOW = datetime(2024, 3, 1, 14, 30, 5)


@pytest.fixture
def test_config():
    """Provide test configuration"""
    return {
        "tracking": {
            "adjacency_tolerance_seconds": 0.1,
            "jump_threshold_seconds": 1.5,
            "update_interval_ms": 250,
        },
        "commands": {"midpoint_fraction": 0.5, "replay_pause_delay_seconds": 20},
        "storage": {"backend": "memory", "quota_bytes": 0},
        "web_server": {"host": "127.0.0.1", "port": 8099},
        "logging": {"debug": False},
    }


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def progress_store(kv_store):
    return ProgressStore(kv_store, now=lambda: FIXED_NOW)


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def prompter():
    return RecordingPrompter()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def make_session(test_config, progress_store, prompter, scheduler):
    """Factory for sessions sharing the test store, prompter and scheduler"""

    def _make(resource="https://cdn.example.com/videos/BigBuckBunny.mp4", media=None, **kwargs):
        kwargs.setdefault("store", progress_store)
        return WatchSession(
            resource,
            media=media or FakeMedia(),
            prompter=prompter,
            scheduler=scheduler,
            config=test_config,
            **kwargs,
        )

    return _make


@pytest.fixture
def session(make_session, media):
    return make_session(media=media)


@pytest.fixture
def player(session, media):
    return Player(session, media)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def failing_store():
    return ProgressStore(FailingKeyValueStore(), now=lambda: FIXED_NOW)


@pytest.fixture
def make_media():
    return FakeMedia


@pytest.fixture
def make_player():
    return Player
