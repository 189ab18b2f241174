"""
Dashboard Blueprint: per-company counters for the home screen.

    GET /api/v1/dashboard/stats
"""

from flask import Blueprint, g, jsonify

from sourcetrack.auth import require_auth, require_company
from sourcetrack.services.project_service import dashboard_stats

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1")


@dashboard_bp.route("/dashboard/stats", methods=["GET"])
@require_auth
@require_company
def stats():
    return jsonify(dashboard_stats(g.current_user)), 200
