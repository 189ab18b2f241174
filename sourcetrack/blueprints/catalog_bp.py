"""
Catalog Blueprint: factories and product types.

Blueprint: catalog_bp
Prefix: /api/v1

Endpoints:
    GET/POST         /factories               -- List / create (admin)
    PATCH/DELETE     /factories/<fid>         -- Update / delete (admin)
    GET/POST         /product-types           -- List / create (admin)
    PATCH/DELETE     /product-types/<tid>     -- Update / delete (admin)
"""

from flask import Blueprint, jsonify, request

from sourcetrack.auth import current_company_id, require_admin, require_auth, require_company
from sourcetrack.services import catalog_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/v1")


# ── Factories ────────────────────────────────────────────────────────────────

@catalog_bp.route("/factories", methods=["GET"])
@require_auth
@require_company
def list_factories():
    return jsonify(catalog_service.list_factories(current_company_id())), 200


@catalog_bp.route("/factories", methods=["POST"])
@require_auth
@require_company
@require_admin
def create_factory():
    data = request.get_json(silent=True) or {}
    return jsonify(catalog_service.create_factory(current_company_id(), data).to_dict()), 201


@catalog_bp.route("/factories/<int:factory_id>", methods=["PATCH", "PUT"])
@require_auth
@require_company
@require_admin
def update_factory(factory_id):
    data = request.get_json(silent=True) or {}
    return jsonify(catalog_service.update_factory(factory_id, current_company_id(), data).to_dict()), 200


@catalog_bp.route("/factories/<int:factory_id>", methods=["DELETE"])
@require_auth
@require_company
@require_admin
def delete_factory(factory_id):
    catalog_service.delete_factory(factory_id, current_company_id())
    return "", 204


# ── Product types ────────────────────────────────────────────────────────────

@catalog_bp.route("/product-types", methods=["GET"])
@require_auth
@require_company
def list_product_types():
    return jsonify(catalog_service.list_product_types(current_company_id())), 200


@catalog_bp.route("/product-types", methods=["POST"])
@require_auth
@require_company
@require_admin
def create_product_type():
    data = request.get_json(silent=True) or {}
    return jsonify(catalog_service.create_product_type(current_company_id(), data).to_dict()), 201


@catalog_bp.route("/product-types/<int:type_id>", methods=["PATCH", "PUT"])
@require_auth
@require_company
@require_admin
def update_product_type(type_id):
    data = request.get_json(silent=True) or {}
    return jsonify(catalog_service.update_product_type(type_id, current_company_id(), data).to_dict()), 200


@catalog_bp.route("/product-types/<int:type_id>", methods=["DELETE"])
@require_auth
@require_company
@require_admin
def delete_product_type(type_id):
    catalog_service.delete_product_type(type_id, current_company_id())
    return "", 204
