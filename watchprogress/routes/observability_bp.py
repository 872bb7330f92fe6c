"""
Observability routes: health check and error dashboard.

Endpoints:
    GET /api/healthz        JSON health status (storage readiness, open sessions)
    GET /api/errors/recent  Recent captured errors
    GET /api/errors/summary Error dedup summary
"""

from flask import Blueprint, current_app, jsonify, request

from ..constants import ERROR_DISPLAY_LIMIT, HEALTH_CHECK_KEY
from ..observability.errors import ErrorTracker
from ..storage import StorageError

observability_bp = Blueprint("observability", __name__)


def _server():
    return current_app.config["server"]


# ── Health ───────────────────────────────────────────────────────


@observability_bp.route("/api/healthz")
def healthz():
    """Readiness check.

    Returns 200 when the key-value store answers, 503 otherwise.
    """
    srv = _server()
    checks = {}
    healthy = True

    try:
        srv.hub.store.store.get(HEALTH_CHECK_KEY)
        checks["storage"] = {"status": "ok"}
    except StorageError as e:
        checks["storage"] = {"status": "error", "message": str(e)}
        healthy = False

    payload = {
        "status": "healthy" if healthy else "degraded",
        "open_sessions": len(srv.hub),
        "checks": checks,
    }
    return jsonify(payload), 200 if healthy else 503


# ── Errors ───────────────────────────────────────────────────────


@observability_bp.route("/api/errors/recent")
def errors_recent():
    """Return the most recent captured errors."""
    limit = request.args.get("limit", ERROR_DISPLAY_LIMIT, type=int)
    return jsonify(ErrorTracker().recent_errors(max(1, limit)))


@observability_bp.route("/api/errors/summary")
def errors_summary():
    """Return deduplicated error counts."""
    return jsonify(ErrorTracker().error_summary())
