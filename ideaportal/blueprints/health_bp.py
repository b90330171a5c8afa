"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — liveness, always 200 while the app runs
    GET /api/v1/health/ready  — readiness, checks the database (503 on failure)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from ideaportal.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe with database status."""
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
        healthy = True
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        healthy = False
        logger.error("Health check — database failed: %s", exc)

    checks["app"] = {"name": "Innovation Review Portal", "testing": current_app.testing}
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
