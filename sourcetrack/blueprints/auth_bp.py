"""
Auth Blueprint: JWT authentication endpoints.

  POST /api/v1/auth/login         -- Email + password -> access token
  POST /api/v1/auth/register      -- Create a company-less guest -> access token
  GET  /api/v1/auth/me            -- Current user profile
  POST /api/v1/auth/set-password  -- Replace the caller's password
"""

import logging

from flask import Blueprint, g, jsonify, request

from sourcetrack.auth import require_auth
from sourcetrack.services.jwt_service import token_response
from sourcetrack.services.user_service import (
    authenticate_user,
    register_user,
    set_password,
)
from sourcetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    429 with details.retry_after while the email is locked out.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = authenticate_user(email, password)
    logger.info("Login ok user=%s", user.id)
    return jsonify(token_response(user)), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """Body: { "email", "password", "firstName"?, "lastName"? }"""
    data = request.get_json(silent=True) or {}
    user = register_user(
        data.get("email"),
        data.get("password"),
        first_name=data.get("firstName"),
        last_name=data.get("lastName"),
    )
    return jsonify(token_response(user)), 201


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    user = g.current_user
    body = user.to_dict()
    body["company"] = user.company.to_dict() if user.company else None
    return jsonify(body), 200


@auth_bp.route("/set-password", methods=["POST"])
@require_auth
def change_password():
    data = request.get_json(silent=True) or {}
    set_password(g.current_user, data.get("password"))
    return jsonify({"message": "Password updated"}), 200
