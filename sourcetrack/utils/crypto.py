"""
Password hashing (bcrypt) and invite token generation.

The bcrypt cost comes from ``BCRYPT_ROUNDS`` when an app context is
active; the test config lowers it so fixtures stay fast.
"""

import secrets

import bcrypt
from flask import current_app, has_app_context

DEFAULT_ROUNDS = 12
INVITE_TOKEN_BYTES = 32


def _rounds():
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def hash_password(plain_password: str) -> str:
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """False for users without a password (never set) or a corrupt hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_invite_token() -> str:
    """64 hex chars."""
    return secrets.token_hex(INVITE_TOKEN_BYTES)
