"""
Stage Template Blueprint: the company's stage catalog.

Blueprint: template_bp
Prefix: /api/v1

Endpoints:
    GET    /stage-templates           -- Active templates, by position
    POST   /stage-templates           -- Create a template (admin)
    GET    /stage-templates/<tid>     -- Single template
    PATCH  /stage-templates/<tid>     -- Partial update (admin)
    DELETE /stage-templates/<tid>     -- Deactivate (admin)
"""

from flask import Blueprint, jsonify, request

from sourcetrack.auth import current_company_id, require_admin, require_auth, require_company
from sourcetrack.services import template_service

template_bp = Blueprint("templates", __name__, url_prefix="/api/v1")


@template_bp.route("/stage-templates", methods=["GET"])
@require_auth
@require_company
def list_templates():
    templates = template_service.list_active(current_company_id())
    return jsonify([t.to_dict() for t in templates]), 200


@template_bp.route("/stage-templates", methods=["POST"])
@require_auth
@require_company
@require_admin
def create_template():
    data = request.get_json(silent=True) or {}
    template = template_service.create_template(current_company_id(), data)
    return jsonify(template.to_dict()), 201


@template_bp.route("/stage-templates/<int:template_id>", methods=["GET"])
@require_auth
@require_company
def get_template(template_id):
    template = template_service.get_template(template_id, current_company_id())
    return jsonify(template.to_dict()), 200


@template_bp.route("/stage-templates/<int:template_id>", methods=["PATCH", "PUT"])
@require_auth
@require_company
@require_admin
def update_template(template_id):
    data = request.get_json(silent=True) or {}
    template = template_service.update_template(template_id, current_company_id(), data)
    return jsonify(template.to_dict()), 200


@template_bp.route("/stage-templates/<int:template_id>", methods=["DELETE"])
@require_auth
@require_company
@require_admin
def delete_template(template_id):
    """Soft delete: existing stages keep their template reference."""
    template_service.deactivate_template(template_id, current_company_id())
    return "", 204
