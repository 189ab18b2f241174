"""
Company onboarding, membership and invites.

A company is created by a company-less user, who becomes its admin; the
Template Registry is seeded in the same transaction. Other users join
through invite tokens (64 hex chars, 7-day expiry, ``maxUses`` 0 = unlimited).
"""

import logging
from datetime import datetime, timedelta, timezone

from email_validator import EmailNotValidError, validate_email

from sourcetrack.core.exceptions import NotFoundError, ValidationError
from sourcetrack.models import db
from sourcetrack.models.auth import INVITE_ROLES, Company, CompanyInvite, User
from sourcetrack.services import email_service, template_service
from sourcetrack.services.user_service import get_company_user
from sourcetrack.utils.crypto import generate_invite_token
from sourcetrack.utils.helpers import commit_or_raise, normalize_object_path

logger = logging.getLogger(__name__)

INVITE_TTL = timedelta(days=7)


# ═══════════════════════════════════════════════════════════════
# Company
# ═══════════════════════════════════════════════════════════════
def create_company(user: User, name) -> User:
    """Create a company for ``user``, make them admin and seed templates."""
    if user.company_id is not None:
        raise ValidationError("User already belongs to a company")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Company name is required")

    company = Company(name=name.strip())
    db.session.add(company)
    db.session.flush()
    user.company_id = company.id
    user.role = "admin"
    seeded = template_service.seed_default_templates(company.id)
    commit_or_raise("Company")
    logger.info("Company created id=%s owner=%s templates=%d", company.id, user.id, seeded)
    return user


def get_company(company_id: int) -> Company:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company", company_id)
    return company


def update_company(company_id: int, data: dict) -> Company:
    company = get_company(company_id)
    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Company name is required")
        company.name = name.strip()
    if "logoUrl" in data:
        company.logo_url = normalize_object_path(data["logoUrl"]) or None
    commit_or_raise("Company")
    logger.info("Company updated id=%s", company.id)
    return company


def remove_member(actor: User, user_id: int) -> None:
    """Detach a member; they become a company-less guest."""
    if user_id == actor.id:
        raise ValidationError("Cannot remove yourself from company")
    member = get_company_user(user_id, actor.company_id)
    member.company_id = None
    member.role = "guest"
    commit_or_raise("User")
    logger.info("User removed from company id=%s company=%s by=%s", user_id, actor.company_id, actor.id)


# ═══════════════════════════════════════════════════════════════
# Invites
# ═══════════════════════════════════════════════════════════════
def create_invite(actor: User, data: dict) -> CompanyInvite:
    email = data.get("email")
    if email:
        try:
            email = validate_email(email, check_deliverability=False).normalized.lower()
        except EmailNotValidError as e:
            raise ValidationError("Invalid data", details={"email": str(e)}) from e
    role = data.get("role") or "user"
    if role not in INVITE_ROLES:
        raise ValidationError("Invalid data", details={"role": f"Must be one of: {', '.join(sorted(INVITE_ROLES))}"})
    max_uses = data.get("maxUses", 1)
    if max_uses is None:
        max_uses = 1
    if isinstance(max_uses, bool) or not isinstance(max_uses, int) or max_uses < 0:
        raise ValidationError("Invalid data", details={"maxUses": "Expected a non-negative integer"})

    invite = CompanyInvite(
        company_id=actor.company_id,
        token=generate_invite_token(),
        email=email or None,
        role=role,
        max_uses=max_uses,
        used_count=0,
        expires_at=datetime.now(timezone.utc) + INVITE_TTL,
        created_by_id=actor.id,
    )
    db.session.add(invite)
    commit_or_raise("CompanyInvite")
    logger.info("Invite created id=%s company=%s role=%s", invite.id, invite.company_id, role)

    if invite.email:
        email_service.send_invite_email(invite)
    return invite


def list_invites(company_id: int) -> list[dict]:
    invites = (
        CompanyInvite.query.filter_by(company_id=company_id)
        .order_by(CompanyInvite.created_at.desc(), CompanyInvite.id.desc())
        .all()
    )
    return [i.to_dict() for i in invites]


def delete_invite(invite_id: int, company_id: int) -> None:
    invite = db.session.get(CompanyInvite, invite_id)
    if invite is None or invite.company_id != company_id:
        raise NotFoundError("CompanyInvite", invite_id, company_id)
    db.session.delete(invite)
    commit_or_raise("CompanyInvite")
    logger.info("Invite deleted id=%s", invite_id)


def _usable_invite(token: str) -> CompanyInvite:
    invite = CompanyInvite.query.filter_by(token=token).first()
    if invite is None:
        raise NotFoundError("Invite")
    if invite.is_exhausted:
        raise ValidationError("Invite usage limit reached")
    if invite.is_expired:
        raise ValidationError("Invite expired")
    return invite


def validate_invite(token: str) -> dict:
    invite = _usable_invite(token)
    return {
        "valid": True,
        "companyName": invite.company.name,
        "email": invite.email,
        "role": invite.role,
        "maxUses": invite.max_uses,
        "usedCount": invite.used_count,
    }


def accept_invite(user: User, token: str) -> User:
    if user.company_id is not None:
        raise ValidationError("User already belongs to a company")
    invite = _usable_invite(token)
    invite.used_count += 1
    user.company_id = invite.company_id
    user.role = invite.role or "user"
    commit_or_raise("CompanyInvite")
    logger.info("Invite accepted id=%s user=%s company=%s", invite.id, user.id, invite.company_id)
    return user
