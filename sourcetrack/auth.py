"""
Authentication & authorization decorators.

Provides:
    - require_auth     load the JWT user into g.current_user (401 otherwise)
    - require_company  require g.current_user to belong to a company
                       (403 NO_COMPANY otherwise)
    - require_admin    require an admin/superadmin role (403 otherwise)
    - init_auth        JSON Content-Type enforcement for state-changing
                       API requests (lightweight CSRF mitigation)

Decorators stack in that order:

    @bp.route("/projects/<int:project_id>", methods=["DELETE"])
    @require_auth
    @require_company
    @require_admin
    def delete_project(project_id): ...
"""

import functools
import logging

from flask import g, jsonify, request

from sourcetrack.core.exceptions import NoCompanyError
from sourcetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _load_user():
    from sourcetrack.services.user_service import get_user_by_id

    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        return None
    return get_user_by_id(user_id)


# ── Authentication decorator ─────────────────────────────────────────────────

def require_auth(f):
    """
    Decorator: require a valid Bearer token naming an existing user.

    Sets g.current_user.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = _load_user()
        if user is None:
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def require_company(f):
    """Decorator: raise NoCompanyError when the user has not onboarded yet."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        current_company_id()
        return f(*args, **kwargs)

    return decorated


def require_admin(f):
    """Decorator: admin or superadmin only. Must follow require_auth."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        if not user.is_admin:
            logger.warning(
                "Access denied: role '%s' tried admin endpoint %s", user.role, request.path
            )
            return api_error(E.FORBIDDEN, "Admin access required")
        return f(*args, **kwargs)

    return decorated


def current_company_id() -> int:
    """Company of g.current_user; NoCompanyError when there is none."""
    user = getattr(g, "current_user", None)
    if user is None or user.company_id is None:
        raise NoCompanyError()
    return user.company_id


# ── CSRF protection for API ──────────────────────────────────────────────────

def _check_content_type():
    """
    For state-changing requests (POST/PUT/PATCH/DELETE) with a body,
    require Content-Type: application/json. HTML forms cannot send it.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


def init_auth(app):
    """Install the Content-Type check on API routes."""
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        return _check_content_type()
