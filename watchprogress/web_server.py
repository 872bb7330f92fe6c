"""
Web surface for the watch progress tracker.

HTTP routes expose snapshots and user commands; a Socket.IO channel carries
the media element's notifications in, and progress updates, media commands
and notifications back out to the page that plays the resource.
"""

import os
from typing import Any, Dict

from flask import Flask, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from .config import load_config
from .hub import SessionHub
from .observability import (
    ErrorTracker,
    clear_log_context,
    set_log_context,
    setup_structured_logger,
)
from .persistence import ProgressStore
from .routes import observability_bp, progress_bp
from .storage import build_store


class ProgressServer:
    """Flask + Socket.IO server around a ``SessionHub``"""

    def __init__(
        self,
        config: Dict[str, Any] = None,
        *,
        config_path: str = None,
        store: ProgressStore = None,
    ):
        """Initialise the web server.

        Args:
            config: Pre-loaded configuration dict (preferred).
            config_path: Path to the JSON config file.
            store: Optional pre-built persistence adapter.
                Built from the ``storage`` config section if not provided.
        """
        self.config = config if config is not None else load_config(config_path or "config.json")
        debug_mode = self.config.get("logging", {}).get("debug", False)
        self.logger = setup_structured_logger("web_server", "web_server.log", debug=debug_mode)

        self.app = Flask(__name__)
        self.app.secret_key = os.environ.get("FLASK_SECRET_KEY", os.urandom(32).hex())

        cors_origins = os.environ.get("CORS_ALLOWED_ORIGINS", "").strip()
        if cors_origins:
            allowed_origins = [o.strip() for o in cors_origins.split(",")]
        else:
            allowed_origins = "*"  # local dev default, override in production
        self.socketio = SocketIO(
            self.app, cors_allowed_origins=allowed_origins, async_mode="threading"
        )

        self.error_tracker = ErrorTracker()
        self.error_tracker.install_flask(self.app)

        store = store or ProgressStore(build_store(self.config))
        self.hub = SessionHub(self.config, store, emit=self._emit)

        self._register_blueprints()
        self._setup_socketio()

        self.logger.info("ProgressServer initialized")

    def _emit(self, event: str, payload: Dict[str, Any], room: str) -> None:
        self.socketio.emit(event, payload, to=room)

    def _register_blueprints(self):
        """Register Blueprints and expose server on app."""
        self.app.config["server"] = self
        self.app.register_blueprint(progress_bp)
        self.app.register_blueprint(observability_bp)

    # ── WebSocket ────────────────────────────────────────────────

    def _setup_socketio(self):
        """Setup WebSocket event handlers"""

        @self.socketio.on("connect")
        def handle_connect():
            self.logger.debug("WebSocket client connected: %s", request.sid)

        @self.socketio.on("disconnect")
        def handle_disconnect(*args):
            closed = self.hub.detach_all(request.sid)
            self.logger.debug(
                "WebSocket client disconnected: %s (%d sessions closed)", request.sid, closed
            )

        @self.socketio.on("attach")
        def handle_attach(data):
            resource = str((data or {}).get("resource", "")).strip()
            if not resource:
                return {"error": "resource is required"}
            room = self.hub.attach(resource, request.sid)
            join_room(room)
            with self.hub.session(resource) as session:
                snapshot = session.snapshot()
            emit("progress_update", snapshot)
            return {"room": room}

        @self.socketio.on("detach")
        def handle_detach(data):
            resource = str((data or {}).get("resource", "")).strip()
            if not resource:
                return {"error": "resource is required"}
            leave_room(SessionHub.room(resource))
            return {"closed": self.hub.detach(resource, request.sid)}

        @self.socketio.on("media_event")
        def handle_media_event(data):
            data = data or {}
            resource = str(data.get("resource", "")).strip()
            if not resource:
                return {"error": "resource is required"}
            set_log_context(resource=resource, sid=request.sid)
            try:
                snapshot = self.hub.handle_media_event(
                    resource,
                    str(data.get("kind", "")),
                    float(data.get("position") or 0),
                    duration=data.get("duration"),
                    playing=data.get("playing"),
                )
            except ValueError as e:
                self.logger.warning("Rejected media event from %s: %s", request.sid, e)
                return {"error": str(e)}
            finally:
                clear_log_context()
            return {"is_tracking": snapshot["is_tracking"]}

        @self.socketio.on_error_default
        def handle_socket_error(exc):
            self.error_tracker.capture_exception(exc, extra={"sid": request.sid})
            return {"error": "Internal Server Error"}

    # ── Server Start ─────────────────────────────────────────────

    def run(self, host: str = None, port: int = None):
        """Start the web server; every open session is saved on shutdown."""
        host = host or self.config["web_server"]["host"]
        port = port or self.config["web_server"]["port"]

        self.logger.info("Starting web server on %s:%s", host, port)
        try:
            self.socketio.run(
                self.app, host=host, port=int(port), debug=False, allow_unsafe_werkzeug=True
            )
        finally:
            self.hub.close_all()
