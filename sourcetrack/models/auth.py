"""
Auth Models: companies, users, company invites.

A Company is the tenant root: it owns users, stage templates, catalog
entries and projects. A User without a company is a ``guest`` until they
create one (becoming ``admin``) or accept an invite.
"""

from datetime import datetime, timezone

from sourcetrack.models import db


USER_ROLES = {"guest", "user", "admin", "superadmin"}
ADMIN_ROLES = {"admin", "superadmin"}
INVITE_ROLES = {"user", "admin"}


# ═══════════════════════════════════════════════════════════════
# 1. COMPANIES
# ═══════════════════════════════════════════════════════════════
class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    logo_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    users = db.relationship("User", back_populates="company", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "logoUrl": self.logo_url,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True
    )
    email = db.Column(db.String(200), nullable=False, unique=True)
    password_hash = db.Column(db.String(256))
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    job_title = db.Column(db.String(200))
    profile_image_url = db.Column(db.String(500))
    role = db.Column(db.String(20), nullable=False, default="guest")  # guest | user | admin | superadmin
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_company_id", "company_id"),
    )

    company = db.relationship("Company", back_populates="users")

    @property
    def is_admin(self):
        return self.role in ADMIN_ROLES

    @property
    def display_name(self):
        """First + last name, else email, else "Unknown"."""
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.email or "Unknown"

    def to_dict(self):
        return {
            "id": self.id,
            "companyId": self.company_id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "jobTitle": self.job_title,
            "profileImageUrl": self.profile_image_url,
            "role": self.role,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def to_brief(self):
        """Identity fragment embedded in comments, tasks and history rows."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "profileImageUrl": self.profile_image_url,
        }


# ═══════════════════════════════════════════════════════════════
# 3. COMPANY INVITES
# ═══════════════════════════════════════════════════════════════
class CompanyInvite(db.Model):
    __tablename__ = "company_invites"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default="user")
    max_uses = db.Column(db.Integer, nullable=False, default=1)  # 0 = unlimited
    used_count = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    company = db.relationship("Company")

    @property
    def is_expired(self):
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > expires

    @property
    def is_exhausted(self):
        return self.max_uses > 0 and self.used_count >= self.max_uses

    def to_dict(self):
        return {
            "id": self.id,
            "companyId": self.company_id,
            "token": self.token,
            "email": self.email,
            "role": self.role,
            "maxUses": self.max_uses,
            "usedCount": self.used_count,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
