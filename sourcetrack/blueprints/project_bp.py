"""
Project Blueprint: project aggregate endpoints.

Blueprint: project_bp
Prefix: /api/v1

Endpoints:
  Projects:
    GET    /projects                       -- Summaries with stage statuses and cover
    POST   /projects                       -- Create with products and stages
    GET    /projects/<pid>                 -- Detail (files filtered per viewer)
    PUT    /projects/<pid>                 -- Full update
    PATCH  /projects/<pid>                 -- Partial update
    DELETE /projects/<pid>                 -- Delete (admin)
    GET    /projects/<pid>/products        -- Products of a project

  Stage materialization:
    POST   /projects/<pid>/generate-stages -- Backfill from the active catalog
    POST   /projects/<pid>/add-stages      -- Append stages for chosen templates
"""

import logging

from flask import Blueprint, g, jsonify, request

from sourcetrack.auth import current_company_id, require_auth, require_company
from sourcetrack.services import project_service, stage_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


@project_bp.route("/projects", methods=["GET"])
@require_auth
@require_company
def list_projects():
    return jsonify(project_service.list_with_stage_status(g.current_user)), 200


@project_bp.route("/projects", methods=["POST"])
@require_auth
@require_company
def create_project():
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(data, g.current_user)
    return jsonify(project_service.get_detail(project.id, g.current_user)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_auth
@require_company
def get_project(project_id):
    return jsonify(project_service.get_detail(project_id, g.current_user)), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_auth
@require_company
def update_project(project_id):
    data = request.get_json(silent=True) or {}
    project = project_service.update_project(project_id, data, g.current_user)
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["PATCH"])
@require_auth
@require_company
def patch_project(project_id):
    data = request.get_json(silent=True) or {}
    project = project_service.patch_project(project_id, data, g.current_user)
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_auth
@require_company
def delete_project(project_id):
    """Admin-only; the service decides so superadmins can cross companies."""
    project_service.delete_project(project_id, g.current_user)
    return "", 204


@project_bp.route("/projects/<int:project_id>/products", methods=["GET"])
@require_auth
@require_company
def list_products(project_id):
    return jsonify(project_service.list_products(project_id, current_company_id())), 200


@project_bp.route("/projects/<int:project_id>/generate-stages", methods=["POST"])
@require_auth
@require_company
def generate_stages(project_id):
    stage_service.generate_stages(project_id, current_company_id())
    return jsonify(project_service.get_detail(project_id, g.current_user)), 200


@project_bp.route("/projects/<int:project_id>/add-stages", methods=["POST"])
@require_auth
@require_company
def add_stages(project_id):
    data = request.get_json(silent=True) or {}
    created = stage_service.add_stages(project_id, current_company_id(), data.get("templateIds"))
    return jsonify({
        "message": f"Added {len(created)} new stage(s)",
        "stages": [s.to_dict() for s in created],
    }), 201
