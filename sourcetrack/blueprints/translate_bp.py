"""
Translation Blueprint.

    POST /api/v1/translate   { "text": "...", "targetLang": "DE" }
                             → { "translatedText", "detectedSourceLang" }

503 TRANSLATION_UNAVAILABLE when no provider key is configured,
502 when the provider call fails.
"""

from flask import Blueprint, jsonify, request

from sourcetrack.auth import require_auth
from sourcetrack.services import translation_service

translate_bp = Blueprint("translate", __name__, url_prefix="/api/v1")


@translate_bp.route("/translate", methods=["POST"])
@require_auth
def translate():
    data = request.get_json(silent=True) or {}
    return jsonify(translation_service.translate(data)), 200
