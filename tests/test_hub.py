"""Tests for the session hub and its web-facing collaborators."""

import threading

import pytest

from watchprogress.constants import MSG_RESET_DONE, MSG_SAVED
from watchprogress.hub import LOADED_METADATA, SessionHub, TimerScheduler, WebPrompter
from watchprogress.media import RemoteMediaElement

RESOURCE = "https://cdn.example.com/videos/BigBuckBunny.mp4"
ROOM = "video-progress-BigBuckBunny.mp4"


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def hub(test_config, progress_store, emitted):
    return SessionHub(
        test_config,
        progress_store,
        emit=lambda event, payload, room: emitted.append((event, payload, room)),
    )


def _play(hub, start, end, step=0.3):
    """Forward a play-through from *start* to *end* with real timestamps."""
    hub.handle_media_event(RESOURCE, "play", start)
    with hub.session(RESOURCE) as session:
        position, clock = start, 1000.0
        while position < end:
            position = min(end, round(position + step, 6))
            clock += step
            session.media.observe("timeupdate", position, True)
            session.on_playback_event("timeupdate", position, timestamp=clock)
    hub.handle_media_event(RESOURCE, "pause", end)


# ── WebPrompter ──────────────────────────────────────────────────


class TestWebPrompter:
    def test_confirm_denied_unless_armed(self):
        prompter = WebPrompter(lambda m: None)
        assert prompter.confirm("sure?") is False

    def test_armed_confirmation_consumed_once(self):
        prompter = WebPrompter(lambda m: None)
        prompter.arm_confirmation(True)
        assert prompter.confirm("sure?") is True
        assert prompter.confirm("sure?") is False

    def test_notify_sends_and_buffers(self):
        sent = []
        prompter = WebPrompter(sent.append)
        prompter.notify("hello")
        assert sent == ["hello"]
        assert prompter.drain() == ["hello"]
        assert prompter.drain() == []


# ── RemoteMediaElement ───────────────────────────────────────────


class TestRemoteMediaElement:
    def test_commands_dropped_before_metadata(self):
        sent = []
        media = RemoteMediaElement(sent.append)
        media.seek(10)
        media.play()
        assert sent == []
        assert media.paused

    def test_commands_sent_once_ready(self):
        sent = []
        media = RemoteMediaElement(sent.append)
        media.metadata_loaded()
        media.seek(10)
        media.play()
        assert sent == [{"action": "seek", "position": 10.0}, {"action": "play"}]
        assert media.current_time == 10.0
        assert not media.paused

    def test_observe_tracks_paused_state(self):
        media = RemoteMediaElement(lambda p: None)
        media.observe("play", 3.0)
        assert not media.paused
        media.observe("timeupdate", 3.3)
        assert not media.paused
        media.observe("ended", 600.0)
        assert media.paused
        media.observe("seeked", 20.0, playing=True)
        assert not media.paused
        assert media.current_time == 20.0


# ── TimerScheduler ───────────────────────────────────────────────


class TestTimerScheduler:
    def test_callback_runs_under_lock(self):
        lock = threading.RLock()
        done = threading.Event()
        held = []

        def callback():
            held.append(lock._is_owned())
            done.set()

        TimerScheduler(lock).call_later(0.01, callback)
        assert done.wait(2)
        assert held == [True]

    def test_cancel(self):
        fired = threading.Event()
        timer = TimerScheduler(threading.RLock()).call_later(0.2, fired.set)
        timer.cancel()
        assert not fired.wait(0.4)


# ── SessionHub ───────────────────────────────────────────────────


class TestSessionHub:
    def test_room_is_storage_key(self):
        assert SessionHub.room(RESOURCE) == ROOM

    def test_sessions_created_on_demand(self, hub):
        assert len(hub) == 0
        with hub.session(RESOURCE) as first:
            pass
        with hub.session(RESOURCE + "?t=10") as second:
            pass
        assert first is second
        assert len(hub) == 1

    def test_loadedmetadata_sets_duration(self, hub):
        snapshot = hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert snapshot["duration"] == 600.0
        with hub.session(RESOURCE) as session:
            assert session.media.ready

    def test_play_through_tracked(self, hub):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        snapshot = hub.handle_media_event(RESOURCE, "timeupdate", 10)
        assert snapshot["intervals"] == [{"start": 0.0, "end": 10.0}]
        assert snapshot["is_tracking"] is False

    def test_progress_updates_emitted_to_room(self, hub, emitted):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        hub.handle_media_event(RESOURCE, "play", 0)
        events = [(event, room) for event, _, room in emitted]
        assert ("progress_update", ROOM) in events

    def test_unknown_kind_rejected(self, hub):
        with pytest.raises(ValueError):
            hub.handle_media_event(RESOURCE, "scrub", 1.0)

    def test_save_notification_emitted(self, hub, emitted):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        with hub.session(RESOURCE) as session:
            assert session.save()
        assert ("notification", {"message": MSG_SAVED}, ROOM) in emitted

    def test_reset_requires_armed_confirmation(self, hub, emitted):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        with hub.session(RESOURCE) as session:
            assert session.reset() is False
            session.prompter.arm_confirmation(True)
            assert session.reset() is True
        assert ("notification", {"message": MSG_RESET_DONE}, ROOM) in emitted
        assert ("media_command", {"action": "seek", "position": 0.0}, ROOM) in emitted

    def test_resume_seek_sent_after_metadata(self, hub, emitted):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        hub.close(RESOURCE)

        emitted.clear()
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert ("media_command", {"action": "seek", "position": 10.0}, ROOM) in emitted

    def test_close_saves_and_forgets(self, hub, progress_store):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        assert hub.close(RESOURCE) is True
        assert len(hub) == 0
        assert progress_store.load(ROOM).session_count == 1
        assert hub.close(RESOURCE) is False

    def test_close_all(self, hub, progress_store):
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        hub.handle_media_event("https://cdn.example.com/other.mp4", LOADED_METADATA, duration=60)
        hub.close_all()
        assert len(hub) == 0
        assert progress_store.load(ROOM) is not None
        assert progress_store.load("video-progress-other.mp4") is None

    def test_corrupt_record_opens_clean_session(self, hub, kv_store):
        kv_store.set(ROOM, '{"intervals": [], "sessionCount": 1e400}')
        snapshot = hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert snapshot["intervals"] == []
        assert snapshot["session_count"] == 0
        assert len(hub) == 1

    def test_failed_mount_leaves_no_session(self, hub, monkeypatch):
        def broken_mount(self):
            raise RuntimeError("mount failed")

        monkeypatch.setattr("watchprogress.hub.WatchSession.mount", broken_mount)
        with pytest.raises(RuntimeError):
            hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert len(hub) == 0

        monkeypatch.undo()
        snapshot = hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert snapshot["duration"] == 600.0
        assert len(hub) == 1


# ── Viewers ──────────────────────────────────────────────────────


class TestViewers:
    def test_attach_returns_room(self, hub):
        assert hub.attach(RESOURCE, "sid-1") == ROOM
        assert hub.viewers(RESOURCE) == 1

    def test_session_kept_while_viewers_remain(self, hub):
        hub.attach(RESOURCE, "sid-1")
        hub.attach(RESOURCE, "sid-2")
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert hub.detach(RESOURCE, "sid-1") is False
        assert len(hub) == 1
        assert hub.viewers(RESOURCE) == 1

    def test_last_viewer_leaving_closes_and_saves(self, hub, progress_store):
        hub.attach(RESOURCE, "sid-1")
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        _play(hub, 0, 10)
        assert hub.detach(RESOURCE, "sid-1") is True
        assert len(hub) == 0
        assert hub.viewers(RESOURCE) == 0
        record = progress_store.load(ROOM)
        assert record.session_count == 1
        assert record.intervals[0].end == pytest.approx(10.0)

    def test_detach_unknown_viewer_is_noop(self, hub):
        hub.attach(RESOURCE, "sid-1")
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert hub.detach(RESOURCE, "sid-2") is False
        assert len(hub) == 1

    def test_detach_all_releases_every_room(self, hub):
        other = "https://cdn.example.com/other.mp4"
        hub.attach(RESOURCE, "sid-1")
        hub.attach(other, "sid-1")
        hub.attach(other, "sid-2")
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        hub.handle_media_event(other, LOADED_METADATA, duration=60)

        assert hub.detach_all("sid-1") == 1
        assert len(hub) == 1
        assert hub.viewers(other) == 1
        assert hub.detach_all("sid-1") == 0

    def test_close_forgets_viewers(self, hub):
        hub.attach(RESOURCE, "sid-1")
        hub.handle_media_event(RESOURCE, LOADED_METADATA, duration=600)
        assert hub.close(RESOURCE) is True
        assert hub.viewers(RESOURCE) == 0
        assert hub.detach(RESOURCE, "sid-1") is False
