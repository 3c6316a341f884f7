"""Health check endpoints."""
from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Basic health check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Readiness check: reports the cluster lock backend and whether it answers."""
    cfg = current_app.config["APP_CONFIG"]
    manager = current_app.extensions["realmsync"]
    lock = manager.scheduler.lock
    ping = getattr(lock, "ping", None)
    lock_ok = ping() if callable(ping) else True
    body = {
        "status": "ready" if lock_ok else "degraded",
        "lockBackend": cfg.lock_backend,
        "scheduledTasks": len(manager.scheduler.scheduled_names()),
    }
    return jsonify(body), (200 if lock_ok else 503)
