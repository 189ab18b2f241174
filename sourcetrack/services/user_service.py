"""
User Service: registration, password login, profile updates, admin user views.

Login attempts are throttled by LoginAttemptTracker, an in-process map
keyed by lower-cased email with a fixed window and lockout. State resets
on restart and is not shared between workers: single-instance only.
"""

import logging
import threading
import time
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy import func

from sourcetrack.core.exceptions import (
    NoCompanyError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sourcetrack.models import db
from sourcetrack.models.auth import User
from sourcetrack.models.history import StatusHistory
from sourcetrack.models.project import Project
from sourcetrack.models.stage import Stage, Task
from sourcetrack.utils.crypto import hash_password, verify_password
from sourcetrack.utils.helpers import commit_or_raise, normalize_object_path

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class UserServiceError(Exception):
    """Auth-flow error carrying its own HTTP status."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class LoginRateLimitedError(UserServiceError):
    """Raised while an email is locked out after too many failed logins."""
    def __init__(self, retry_after):
        self.retry_after = retry_after
        super().__init__("Too many login attempts. Try again later.", 429)


# ═══════════════════════════════════════════════════════════════
# Login attempt tracking
# ═══════════════════════════════════════════════════════════════
class LoginAttemptTracker:
    """Fixed-window failure counter with lockout, keyed by email."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._state: dict[str, dict] = {}

    def check(self, key, lockout_seconds):
        """Raise LoginRateLimitedError if ``key`` is currently locked out."""
        with self._lock:
            entry = self._state.get(key)
            if not entry or entry.get("locked_until") is None:
                return
            remaining = entry["locked_until"] - self._clock()
            if remaining > 0:
                raise LoginRateLimitedError(int(remaining) + 1)
            self._state.pop(key, None)

    def __len__(self):
        with self._lock:
            return len(self._state)

    def _evict_expired(self, now, window_seconds):
        """Drop entries whose window has closed and that are not locked out."""
        stale = [
            key
            for key, entry in self._state.items()
            if now - entry["window_start"] > window_seconds
            and (entry["locked_until"] is None or entry["locked_until"] <= now)
        ]
        for key in stale:
            del self._state[key]

    def record_failure(self, key, max_attempts, window_seconds, lockout_seconds):
        now = self._clock()
        with self._lock:
            self._evict_expired(now, window_seconds)
            entry = self._state.get(key)
            if not entry or now - entry["window_start"] > window_seconds:
                entry = {"window_start": now, "count": 0, "locked_until": None}
                self._state[key] = entry
            entry["count"] += 1
            if entry["count"] >= max_attempts:
                entry["locked_until"] = now + lockout_seconds
                logger.warning("Login locked out for %s after %d failures", key, entry["count"])

    def reset(self, key=None):
        with self._lock:
            if key is None:
                self._state.clear()
            else:
                self._state.pop(key, None)


login_tracker = LoginAttemptTracker()


def _normalize_email(email):
    try:
        return validate_email(email or "", check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")


# ═══════════════════════════════════════════════════════════════
# Registration / login
# ═══════════════════════════════════════════════════════════════
def register_user(email, password, first_name=None, last_name=None) -> User:
    """Create a company-less ``guest`` user."""
    email = _normalize_email(email)
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if User.query.filter_by(email=email).first():
        raise UserServiceError("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        role="guest",
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User registered id=%s", user.id)
    return user


def authenticate_user(email, password) -> User:
    """Verify credentials, enforcing the per-email login throttle."""
    key = (email or "").strip().lower()
    cfg = current_app.config
    max_attempts = cfg.get("LOGIN_MAX_ATTEMPTS", 5)
    window = cfg.get("LOGIN_WINDOW_SECONDS", 900)
    lockout = cfg.get("LOGIN_LOCKOUT_SECONDS", 900)

    login_tracker.check(key, lockout)

    user = User.query.filter_by(email=key).first()
    if not user or not verify_password(password or "", user.password_hash):
        login_tracker.record_failure(key, max_attempts, window, lockout)
        raise UserServiceError("Invalid email or password", 401)

    login_tracker.reset(key)
    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


def set_password(user: User, password) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    user.password_hash = hash_password(password)
    db.session.commit()
    logger.info("Password set user=%s", user.id)


# ═══════════════════════════════════════════════════════════════
# Lookup / profile
# ═══════════════════════════════════════════════════════════════
def get_user_by_id(user_id) -> User | None:
    return db.session.get(User, user_id)


def list_company_users(company_id: int) -> list[dict]:
    users = (
        User.query.filter_by(company_id=company_id)
        .order_by(User.first_name, User.email)
        .all()
    )
    return [u.to_dict() for u in users]


def get_company_user(user_id, company_id) -> User:
    user = db.session.get(User, user_id)
    if user is None or user.company_id != company_id:
        raise NotFoundError("User", user_id, company_id)
    return user


_PROFILE_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "jobTitle": "job_title",
}


def update_profile(user: User, data: dict) -> dict:
    """Partial update of the caller's own profile."""
    for key, attr in _PROFILE_FIELDS.items():
        if key in data:
            value = data[key]
            if value is not None and not isinstance(value, str):
                raise ValidationError("Invalid data", details={key: "Expected a string"})
            setattr(user, attr, (value or "").strip() or None)
    if "profileImageUrl" in data:
        user.profile_image_url = normalize_object_path(data["profileImageUrl"]) or None
    db.session.commit()
    logger.info("Profile updated user=%s", user.id)
    return user.to_dict()


def update_member_role(actor: User, user_id, role) -> dict:
    """Admin changes another member's role within the same company."""
    if role not in ("user", "admin"):
        raise ValidationError("Invalid data", details={"role": "Must be one of: user, admin"})
    target = get_company_user(user_id, actor.company_id)
    if target.id == actor.id:
        raise ValidationError("You cannot change your own role")
    if target.role == "superadmin":
        raise ValidationError("Cannot change a superadmin's role")
    target.role = role
    db.session.commit()
    logger.info("User role changed id=%s role=%s by=%s", target.id, role, actor.id)
    return target.to_dict()


# ═══════════════════════════════════════════════════════════════
# Admin views
# ═══════════════════════════════════════════════════════════════
_CLOSED_STAGE_STATUSES = {"completed", "skip"}


def _naive(ts):
    return ts.replace(tzinfo=None) if ts.tzinfo else ts


def _project_finished_at(project):
    """Time of the last status change when every stage is closed, else None."""
    if not project.stages or any(s.status not in _CLOSED_STAGE_STATUSES for s in project.stages):
        return None
    return (
        db.session.query(func.max(StatusHistory.created_at))
        .join(Stage, StatusHistory.stage_id == Stage.id)
        .filter(Stage.project_id == project.id)
        .scalar()
    ) or project.updated_at


def _user_stats(user, projects, open_tasks) -> dict:
    durations, completed = [], 0
    for project in projects:
        finished_at = _project_finished_at(project)
        if finished_at is None:
            continue
        completed += 1
        if project.created_at:
            elapsed = _naive(finished_at) - _naive(project.created_at)
            durations.append(elapsed.total_seconds() / 86400)
    d = user.to_dict()
    d.update({
        "projectCount": len(projects),
        "completedProjectCount": completed,
        "avgProjectDuration": round(sum(durations) / len(durations), 1) if durations else None,
        "openTaskCount": open_tasks,
    })
    return d


def list_users_with_stats(actor: User) -> list[dict]:
    """Per-user project and task counters for the admin user screen.

    Projects are those the user is responsible for. Admins see their own
    company; a superadmin sees every user.
    """
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")
    query = User.query
    if actor.role != "superadmin":
        if actor.company_id is None:
            raise NoCompanyError()
        query = query.filter_by(company_id=actor.company_id)
    users = query.order_by(User.first_name, User.email).all()
    ids = [u.id for u in users]

    projects_by_user: dict[int, list] = {uid: [] for uid in ids}
    if ids:
        for project in Project.query.filter(Project.responsible_user_id.in_(ids)).all():
            projects_by_user[project.responsible_user_id].append(project)
        open_tasks = dict(
            db.session.query(Task.assigned_to_id, func.count(Task.id))
            .filter(Task.assigned_to_id.in_(ids), Task.completed.is_(False))
            .group_by(Task.assigned_to_id)
            .all()
        )
    else:
        open_tasks = {}
    return [_user_stats(u, projects_by_user[u.id], open_tasks.get(u.id, 0)) for u in users]


def delete_user(actor: User, user_id) -> None:
    """Superadmin hard delete; comments and tasks go with the user."""
    if actor.role != "superadmin":
        raise PermissionDeniedError("Superadmin access required")
    if user_id == actor.id:
        raise ValidationError("Cannot delete yourself")
    target = db.session.get(User, user_id)
    if target is None:
        raise NotFoundError("User", user_id)
    login_tracker.reset(target.email)
    db.session.delete(target)
    commit_or_raise("User")
    logger.info("User deleted id=%s by=%s", user_id, actor.id)
