"""
Session hub: one ``WatchSession`` per media resource, served to many threads.

The web server handles HTTP requests, socket messages and replay timers on
different threads.  Every one of them reaches a session through
``SessionHub.session()``, which holds the hub's re-entrant lock for the whole
call, so each session still sees one event at a time, run to completion.
"""

import threading
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from .constants import NOTIFICATION_BUFFER_SIZE
from .media import RemoteMediaElement
from .persistence import ProgressStore
from .session import WatchSession
from .utils import setup_logger, storage_key

LOADED_METADATA = "loadedmetadata"

Emitter = Callable[[str, Dict[str, Any], str], None]


class TimerScheduler:
    """``Scheduler`` backed by ``threading.Timer``; callbacks run under *lock*."""

    def __init__(self, lock):
        self._lock = lock

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        def _run():
            with self._lock:
                callback()

        timer = threading.Timer(delay, _run)
        timer.daemon = True
        timer.start()
        return timer


class WebPrompter:
    """``Prompter`` for remote clients.

    Confirmation cannot be asked interactively over HTTP, so the request that
    triggers a reset arms it up front; it is consumed by the next ``confirm``.
    """

    def __init__(self, send: Callable[[str], None]):
        self._send = send
        self._armed = False
        self.messages: deque = deque(maxlen=NOTIFICATION_BUFFER_SIZE)

    def arm_confirmation(self, confirmed: bool) -> None:
        self._armed = bool(confirmed)

    def confirm(self, prompt: str) -> bool:
        armed, self._armed = self._armed, False
        return armed

    def notify(self, message: str) -> None:
        self.messages.append(message)
        self._send(message)

    def drain(self) -> List[str]:
        """Return and forget the notifications collected so far."""
        messages = list(self.messages)
        self.messages.clear()
        return messages


class SessionHub:
    """Registry of live sessions keyed by storage key"""

    def __init__(
        self,
        config: Dict[str, Any],
        store: ProgressStore,
        *,
        emit: Optional[Emitter] = None,
    ):
        self.config = config
        self.store = store
        self._emit = emit or (lambda event, payload, room: None)
        self._lock = threading.RLock()
        self._sessions: Dict[str, WatchSession] = {}
        self._viewers: Dict[str, Set[str]] = {}
        self._rooms_by_viewer: Dict[str, Set[str]] = {}
        self.scheduler = TimerScheduler(self._lock)
        debug = config.get("logging", {}).get("debug", False)
        self.logger = setup_logger("hub", "hub.log", debug=debug)

    @staticmethod
    def room(resource: str) -> str:
        return storage_key(resource)

    @contextmanager
    def session(self, resource: str) -> Iterator[WatchSession]:
        """Yield the session for *resource* with exclusive access."""
        with self._lock:
            yield self._get_or_create(resource)

    def handle_media_event(
        self,
        resource: str,
        kind: str,
        position: float = 0.0,
        *,
        duration: float = None,
        playing: bool = None,
    ) -> Dict[str, Any]:
        """Route a notification forwarded by a client's media element.

        Raises:
            ValueError: If *kind* is not a known notification.
        """
        with self.session(resource) as session:
            media = session.media
            if kind == LOADED_METADATA:
                media.metadata_loaded()
                session.on_media_ready(duration)
            else:
                media.observe(kind, position, playing)
                session.on_playback_event(kind, position, playing=playing)
            return session.snapshot()

    def attach(self, resource: str, viewer: str) -> str:
        """Record *viewer* as watching *resource*; returns the room name."""
        room = self.room(resource)
        with self._lock:
            self._viewers.setdefault(room, set()).add(viewer)
            self._rooms_by_viewer.setdefault(viewer, set()).add(room)
        return room

    def detach(self, resource: str, viewer: str) -> bool:
        """Drop *viewer* from *resource*.

        The session is closed (and saved) when its last viewer leaves.
        Returns True if that happened.
        """
        with self._lock:
            return self._release(self.room(resource), viewer)

    def detach_all(self, viewer: str) -> int:
        """Drop *viewer* from every room it joined.  Returns sessions closed."""
        with self._lock:
            rooms = self._rooms_by_viewer.pop(viewer, set())
            return sum(1 for room in rooms if self._release(room, viewer))

    def viewers(self, resource: str) -> int:
        with self._lock:
            return len(self._viewers.get(self.room(resource), ()))

    def close(self, resource: str) -> bool:
        """Unmount and forget one session.  Returns False if it was not open."""
        with self._lock:
            return self._close_room(self.room(resource))

    def close_all(self) -> None:
        """Unmount every session (final best-effort saves)."""
        with self._lock:
            for key in list(self._sessions):
                self._sessions.pop(key).unmount()
            self._viewers.clear()
            self._rooms_by_viewer.clear()
        self.logger.info("All sessions closed")

    def __len__(self) -> int:
        return len(self._sessions)

    def _release(self, room: str, viewer: str) -> bool:
        viewers = self._viewers.get(room)
        if not viewers or viewer not in viewers:
            return False
        viewers.discard(viewer)
        rooms = self._rooms_by_viewer.get(viewer)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._rooms_by_viewer[viewer]
        if viewers:
            return False
        self.logger.debug("Last viewer left %s", room)
        return self._close_room(room)

    def _close_room(self, room: str) -> bool:
        for viewer in self._viewers.pop(room, set()):
            rooms = self._rooms_by_viewer.get(viewer)
            if rooms is not None:
                rooms.discard(room)
                if not rooms:
                    del self._rooms_by_viewer[viewer]
        session = self._sessions.pop(room, None)
        if session is None:
            return False
        session.unmount()
        self.logger.info("Closed session %s", room)
        return True

    def _get_or_create(self, resource: str) -> WatchSession:
        room = self.room(resource)
        session = self._sessions.get(room)
        if session is not None:
            return session

        debug = self.config.get("logging", {}).get("debug", False)
        media = RemoteMediaElement(
            lambda payload: self._emit("media_command", payload, room), debug=debug
        )
        prompter = WebPrompter(lambda message: self._emit("notification", {"message": message}, room))
        session = WatchSession(
            resource,
            media=media,
            store=self.store,
            prompter=prompter,
            scheduler=self.scheduler,
            config=self.config,
            on_change=lambda snapshot: self._emit("progress_update", snapshot, room),
        )
        session.mount()
        self._sessions[room] = session
        self.logger.info("Opened session %s", room)
        return session
