"""
Health probes. Public, not rate limited.

    GET /api/v1/health         readiness, always 200 while the process serves
    GET /api/v1/health/ready   same
    GET /api/v1/health/live    database round trip plus provider configuration;
                               503 when the database is unreachable
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from sourcetrack.models import db
from sourcetrack.services.email_service import EmailService
from sourcetrack.services.translation_service import is_available as translation_available

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


def _database_check():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("/live", methods=["GET"])
def live():
    database = _database_check()
    healthy = database["status"] == "ok"
    checks = {
        "database": database,
        "email": {"provider": EmailService.provider()},
        "translation": {"configured": translation_available()},
        "app": {"name": "SourceTrack", "debug": current_app.debug, "testing": current_app.testing},
    }
    return (
        jsonify({"status": "ok" if healthy else "degraded", "checks": checks}),
        200 if healthy else 503,
    )
