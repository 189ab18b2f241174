"""
Access tokens for the SPA client: HS256 JWTs carried as ``Bearer``.

Claims:
    sub         user id (string, per RFC 7519)
    company_id  present once the user belongs to a company
    role        guest | user | admin | superadmin at issue time
    type        always "access"
    iat / exp   lifetime from JWT_ACCESS_EXPIRES (default 24h)
    jti         random id, for log correlation

Role and company are informational only: ``require_auth`` reloads the
user on every request, so a demotion or removal takes effect at once.
Creating or joining a company returns a fresh token anyway so the client
can read its new role without an extra round trip.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
TOKEN_TYPE = "access"


def _secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _lifetime_seconds() -> int:
    return int(current_app.config.get("JWT_ACCESS_EXPIRES", 86400))


def generate_access_token(user_id: int, company_id: int | None, role: str) -> str:
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(seconds=_lifetime_seconds()),
        "jti": uuid.uuid4().hex,
    }
    if company_id is not None:
        claims["company_id"] = company_id
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def token_response(user) -> dict:
    """Body for login, register, company creation and invite acceptance."""
    return {
        "access_token": generate_access_token(user.id, user.company_id, user.role),
        "token_type": "Bearer",
        "expires_in": _lifetime_seconds(),
        "user": user.to_dict(),
    }


def decode_access_token(token: str) -> dict:
    """Verified claims; raises ``jwt.InvalidTokenError`` (or a subclass) otherwise."""
    claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"unexpected token type {claims.get('type')!r}")
    return claims
