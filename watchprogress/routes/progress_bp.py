"""Watch progress routes — snapshot and user commands."""

from typing import Any, Dict, Tuple

from flask import Blueprint, current_app, jsonify, request

progress_bp = Blueprint("progress", __name__)


def _server():
    return current_app.config["server"]


def _payload() -> Tuple[str, Dict[str, Any]]:
    """Return the requested resource and the JSON body (may be empty)."""
    data = request.get_json(silent=True) or {}
    resource = data.get("resource") or request.args.get("resource", "")
    return str(resource).strip(), data


def _missing_resource():
    return jsonify({"error": "resource is required"}), 400


@progress_bp.route("/api/progress")
def api_get_progress():
    """Current snapshot: merged intervals, metrics, session info."""
    resource, _ = _payload()
    if not resource:
        return _missing_resource()
    with _server().hub.session(resource) as session:
        return jsonify(session.snapshot())


@progress_bp.route("/api/progress/save", methods=["POST"])
def api_save_progress():
    """Persist the session now."""
    resource, _ = _payload()
    if not resource:
        return _missing_resource()
    with _server().hub.session(resource) as session:
        saved = session.save()
        return jsonify(
            {
                "saved": saved,
                "snapshot": session.snapshot(),
                "messages": session.prompter.drain(),
            }
        )


@progress_bp.route("/api/progress/reset", methods=["POST"])
def api_reset_progress():
    """Clear all progress.  The body must carry ``"confirm": true``."""
    resource, data = _payload()
    if not resource:
        return _missing_resource()
    with _server().hub.session(resource) as session:
        session.prompter.arm_confirmation(data.get("confirm") is True)
        done = session.reset()
        return jsonify(
            {
                "reset": done,
                "snapshot": session.snapshot(),
                "messages": session.prompter.drain(),
            }
        )


@progress_bp.route("/api/progress/jump", methods=["POST"])
def api_jump_to_midpoint():
    """Seek to the middle of the media (skip test)."""
    resource, _ = _payload()
    if not resource:
        return _missing_resource()
    with _server().hub.session(resource) as session:
        target = session.jump_to_midpoint()
        return jsonify({"target": target, "snapshot": session.snapshot()})


@progress_bp.route("/api/progress/replay", methods=["POST"])
def api_replay_from_start():
    """Replay from the start with an automatic pause (rewatch test)."""
    resource, _ = _payload()
    if not resource:
        return _missing_resource()
    with _server().hub.session(resource) as session:
        session.replay_from_start()
        return jsonify({"snapshot": session.snapshot()})


@progress_bp.route("/api/progress", methods=["DELETE"])
def api_close_session():
    """Close the session (saving it if anything was watched)."""
    resource, _ = _payload()
    if not resource:
        return _missing_resource()
    closed = _server().hub.close(resource)
    return jsonify({"closed": closed})
