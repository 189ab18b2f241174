"""Shared utility functions used by the service layer.

parse_date_input:    strict date parsing, raises ValidationError naming the field
normalize_object_path: storage URL -> stable ``/objects/<id>`` path
commit_or_raise:     commit the session, rolling back on failure
"""
import logging
from datetime import date, datetime
from urllib.parse import urlparse

from flask import current_app
from sqlalchemy.exc import IntegrityError

from sourcetrack.core.exceptions import ConflictError, ValidationError
from sourcetrack.models import db

logger = logging.getLogger(__name__)

_STORAGE_HOST = "storage.googleapis.com"


def parse_date_input(value, field):
    """Parse a date string, raising ValidationError on bad input.

    Empty values (None, "") parse to None so callers can clear a date.
    Supports: YYYY-MM-DD, full ISO datetimes, DD.MM.YYYY, date objects.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError("Invalid data", details={field: "Expected a date string or null"})
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValidationError(
            "Invalid data",
            details={field: "Invalid date format. Use YYYY-MM-DD."},
        ) from exc


def normalize_object_path(raw_path):
    """Turn a signed storage URL into the app's ``/objects/<entity>`` path.

    URLs that are not on the storage host, or that point outside the
    private object directory, are returned as their path (or unchanged).
    """
    if not raw_path or not raw_path.startswith(f"https://{_STORAGE_HOST}/"):
        return raw_path
    object_path = urlparse(raw_path).path
    private_dir = current_app.config.get("OBJECT_PRIVATE_DIR", "/private")
    if not private_dir.endswith("/"):
        private_dir += "/"
    if not object_path.startswith(private_dir):
        return object_path
    return f"/objects/{object_path[len(private_dir):]}"


def commit_or_raise(resource="Record"):
    """Commit the current session; IntegrityError becomes ConflictError.

    Any other failure is rolled back and re-raised for the app-level
    500 handler.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit resource=%s: %s", resource, exc.orig)
        raise ConflictError(resource, "constraint") from exc
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit resource=%s", resource)
        raise
