"""
Company Blueprint: onboarding, invites and membership.

Blueprint: company_bp
Prefix: /api/v1

Endpoints:
  Onboarding:
    POST   /companies                   -- Create a company (caller becomes admin)
    GET    /company                     -- Caller's company
    PATCH  /company                     -- Rename / logo (admin)

  Invites:
    GET/POST /company/invites           -- List/create invites (admin)
    DELETE   /company/invites/<iid>     -- Revoke an invite (admin)
    GET      /invites/<token>           -- Public invite validation
    POST     /invites/<token>/accept    -- Join the inviting company

  Members:
    GET    /users                       -- Members of caller's company
    GET    /users/stats                 -- Members with project/task counters (admin; superadmin: all)
    PATCH  /users/me                    -- Own profile
    PATCH  /users/<uid>                 -- Change a member's role (admin)
    DELETE /users/<uid>/company         -- Remove a member (admin)
    DELETE /users/<uid>                 -- Delete a user outright (superadmin)
"""

import logging

from flask import Blueprint, g, jsonify, request

from sourcetrack.auth import current_company_id, require_admin, require_auth, require_company
from sourcetrack.services import company_service
from sourcetrack.services.jwt_service import token_response
from sourcetrack.services.user_service import (
    delete_user,
    list_company_users,
    list_users_with_stats,
    update_member_role,
    update_profile,
)

logger = logging.getLogger(__name__)

company_bp = Blueprint("company", __name__, url_prefix="/api/v1")


# ── Onboarding ───────────────────────────────────────────────────────────────

@company_bp.route("/companies", methods=["POST"])
@require_auth
def create_company():
    data = request.get_json(silent=True) or {}
    user = company_service.create_company(g.current_user, data.get("name"))
    # Role and company changed, so hand back a fresh token.
    return jsonify(token_response(user)), 201


@company_bp.route("/company", methods=["GET"])
@require_auth
@require_company
def get_company():
    company = company_service.get_company(current_company_id())
    return jsonify(company.to_dict()), 200


@company_bp.route("/company", methods=["PATCH"])
@require_auth
@require_company
@require_admin
def update_company():
    data = request.get_json(silent=True) or {}
    company = company_service.update_company(current_company_id(), data)
    return jsonify(company.to_dict()), 200


# ── Invites ──────────────────────────────────────────────────────────────────

@company_bp.route("/company/invites", methods=["GET"])
@require_auth
@require_company
@require_admin
def list_invites():
    return jsonify(company_service.list_invites(current_company_id())), 200


@company_bp.route("/company/invites", methods=["POST"])
@require_auth
@require_company
@require_admin
def create_invite():
    data = request.get_json(silent=True) or {}
    invite = company_service.create_invite(g.current_user, data)
    return jsonify(invite.to_dict()), 201


@company_bp.route("/company/invites/<int:invite_id>", methods=["DELETE"])
@require_auth
@require_company
@require_admin
def delete_invite(invite_id):
    company_service.delete_invite(invite_id, current_company_id())
    return "", 204


@company_bp.route("/invites/<token>", methods=["GET"])
def validate_invite(token):
    """Public: lets the invite page show which company is inviting."""
    return jsonify(company_service.validate_invite(token)), 200


@company_bp.route("/invites/<token>/accept", methods=["POST"])
@require_auth
def accept_invite(token):
    user = company_service.accept_invite(g.current_user, token)
    return jsonify(token_response(user)), 200


# ── Members ──────────────────────────────────────────────────────────────────

@company_bp.route("/users", methods=["GET"])
@require_auth
@require_company
def list_users():
    return jsonify(list_company_users(current_company_id())), 200


@company_bp.route("/users/me", methods=["PATCH"])
@require_auth
def update_me():
    data = request.get_json(silent=True) or {}
    return jsonify(update_profile(g.current_user, data)), 200


@company_bp.route("/users/<int:user_id>", methods=["PATCH"])
@require_auth
@require_company
@require_admin
def update_role(user_id):
    data = request.get_json(silent=True) or {}
    return jsonify(update_member_role(g.current_user, user_id, data.get("role"))), 200


@company_bp.route("/users/<int:user_id>/company", methods=["DELETE"])
@require_auth
@require_company
@require_admin
def remove_member(user_id):
    company_service.remove_member(g.current_user, user_id)
    return jsonify({"success": True}), 200


@company_bp.route("/users/stats", methods=["GET"])
@require_auth
@require_admin
def users_with_stats():
    return jsonify(list_users_with_stats(g.current_user)), 200


@company_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_auth
def delete_user_route(user_id):
    """Superadmin only; checked in the service."""
    delete_user(g.current_user, user_id)
    return jsonify({"success": True}), 200
