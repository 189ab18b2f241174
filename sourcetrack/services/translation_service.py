"""Translation pass-through to DeepL's REST API."""

import logging

import requests
from flask import current_app

from sourcetrack.core.exceptions import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_TARGET_LANGS = ("EN", "RU", "ZH", "DE", "FR", "ES", "IT", "JA", "KO", "PT")
MAX_TEXT_LENGTH = 10000

# DeepL rejects bare EN/PT as a target.
_TARGET_MAP = {"EN": "EN-US", "PT": "PT-PT"}


def is_available() -> bool:
    return bool(current_app.config.get("DEEPL_API_KEY"))


def validate_request(data: dict) -> tuple[str, str]:
    text = data.get("text")
    if not isinstance(text, str) or not (1 <= len(text) <= MAX_TEXT_LENGTH):
        raise ValidationError(
            "Invalid data", details={"text": f"Text must be 1 to {MAX_TEXT_LENGTH} characters"}
        )
    target = data.get("targetLang")
    if not isinstance(target, str) or target.upper() not in SUPPORTED_TARGET_LANGS:
        raise ValidationError(
            "Invalid data",
            details={"targetLang": f"Must be one of: {', '.join(SUPPORTED_TARGET_LANGS)}"},
        )
    return text, target.upper()


def translate(data: dict) -> dict:
    """Translate ``data['text']`` into ``data['targetLang']``.

    Raises ExternalServiceError(503) when no API key is configured and
    ExternalServiceError(502) when the provider call fails.
    """
    text, target = validate_request(data)
    if not is_available():
        raise ExternalServiceError("Translation service is not configured", status_code=503)

    cfg = current_app.config
    try:
        resp = requests.post(
            cfg.get("DEEPL_API_URL") or "https://api-free.deepl.com/v2/translate",
            headers={"Authorization": f"DeepL-Auth-Key {cfg['DEEPL_API_KEY']}"},
            json={"text": [text], "target_lang": _TARGET_MAP.get(target, target)},
            timeout=20,
        )
        resp.raise_for_status()
        result = resp.json()["translations"][0]
    except (requests.RequestException, KeyError, IndexError, ValueError) as exc:
        logger.error("Translation failed target=%s error=%s", target, exc)
        raise ExternalServiceError("Translation failed", status_code=502) from exc

    logger.info("Translated %d chars to %s", len(text), target)
    return {
        "translatedText": result.get("text", ""),
        "detectedSourceLang": result.get("detected_source_language"),
    }
