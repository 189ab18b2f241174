"""Uniform JSON error bodies.

Every API error looks like::

    {"error": "Stage not found", "code": "ERR_NOT_FOUND", "details": {...}}

``details`` appears only when there is a field-level breakdown (validation,
conflicts) or a retry hint (rate limiting).

    from sourcetrack.utils.errors import E, api_error

    return api_error(E.FORBIDDEN, "Admin access required")
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NO_COMPANY = "NO_COMPANY"  # client redirects to onboarding
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    UPSTREAM = "ERR_UPSTREAM"
    TRANSLATION_UNAVAILABLE = "TRANSLATION_UNAVAILABLE"
    INTERNAL = "ERR_INTERNAL"


STATUS_FOR_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NO_COMPANY: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.RATE_LIMITED: 429,
    E.UPSTREAM: 502,
    E.TRANSLATION_UNAVAILABLE: 503,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` tuple; status defaults to the code's mapping, else 400."""
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_FOR_CODE.get(code, 400)
