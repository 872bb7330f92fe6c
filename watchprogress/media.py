"""
Media element contract.

The tracker never plays media itself.  It reads position and paused
status from a ``MediaElement`` and asks it to seek, play or pause.
``RemoteMediaElement`` is the implementation used by the web surface: it
mirrors a browser ``<video>`` element from the notifications the page
forwards, and turns commands into ``media_command`` messages for the page.
"""

from typing import Any, Callable, Dict, Optional, Protocol

from .tracking import EventKind
from .utils import setup_logger


class MediaElement(Protocol):
    @property
    def ready(self) -> bool: ...

    @property
    def paused(self) -> bool: ...

    @property
    def current_time(self) -> float: ...

    def seek(self, position: float) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...


class RemoteMediaElement:
    """Mirror of a media element that lives in a connected client.

    Commands issued before the element reported its metadata are dropped.
    """

    def __init__(self, send: Callable[[Dict[str, Any]], None], *, debug: bool = False):
        self._send = send
        self.logger = setup_logger("media", "media.log", debug=debug)
        self.ready = False
        self.paused = True
        self.current_time = 0.0

    # ── Notifications from the client ────────────────────────────

    def metadata_loaded(self) -> None:
        self.ready = True

    def observe(self, kind: str, position: float, playing: Optional[bool] = None) -> None:
        """Update the mirrored state from a forwarded playback notification."""
        self.current_time = float(position)
        kind = EventKind(kind)
        if kind is EventKind.PLAY:
            self.paused = False
        elif kind in (EventKind.PAUSE, EventKind.ENDED):
            self.paused = True
        elif playing is not None:
            self.paused = not playing

    # ── Commands to the client ───────────────────────────────────

    def seek(self, position: float) -> None:
        if self._command({"action": "seek", "position": float(position)}):
            self.current_time = float(position)

    def play(self) -> None:
        if self._command({"action": "play"}):
            self.paused = False

    def pause(self) -> None:
        if self._command({"action": "pause"}):
            self.paused = True

    def _command(self, payload: Dict[str, Any]) -> bool:
        if not self.ready:
            self.logger.debug("Media not ready, dropping command: %s", payload["action"])
            return False
        self._send(payload)
        return True
