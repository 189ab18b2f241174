"""
Bearer token parsing.

Populates ``g.jwt_user_id`` / ``g.jwt_company_id`` / ``g.jwt_role`` for
API requests and never rejects anything itself: routes decorated with
``require_auth`` answer 401 when ``g.jwt_user_id`` stays None. The
invite validation page and health probes are public simply by not using
the decorator.
"""

import logging

import jwt
from flask import g, request

from sourcetrack.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

_BEARER = "Bearer "


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith(_BEARER):
        return None
    return header[len(_BEARER):].strip() or None


def init_jwt_middleware(app):
    @app.before_request
    def _parse_bearer():
        g.jwt_user_id = g.jwt_company_id = g.jwt_role = None
        if not request.path.startswith("/api/v1/"):
            return None

        token = _bearer_token()
        if token is None:
            return None
        try:
            claims = decode_access_token(token)
        except jwt.ExpiredSignatureError:
            logger.debug("Expired token on %s", request.path)
            return None
        except jwt.InvalidTokenError as exc:
            logger.debug("Rejected token on %s: %s", request.path, exc)
            return None

        try:
            g.jwt_user_id = int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            return None
        g.jwt_company_id = claims.get("company_id")
        g.jwt_role = claims.get("role")
        return None
