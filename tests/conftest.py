"""
Shared pytest fixtures for the SourceTrack test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - company: Company with the default stage catalog seeded
    - admin / member: users of ``company``
    - outsider: admin of a second company
    - auth_headers: callable minting Bearer headers for a user
    - user_factory: make_user, for extra members
    - project: API-created project with the default stages
"""

import pytest

from sourcetrack import create_app
from sourcetrack.models import db as _db
from sourcetrack.models.auth import Company, User
from sourcetrack.services.jwt_service import generate_access_token
from sourcetrack.services.template_service import seed_default_templates
from sourcetrack.services.user_service import login_tracker
from sourcetrack.utils.crypto import hash_password

API = "/api/v1"
PASSWORD = "secret123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        login_tracker.reset()
        yield
        login_tracker.reset()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Tenancy fixtures ─────────────────────────────────────────────────────


def make_user(email, company=None, role="user", first_name=None, last_name=None):
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        first_name=first_name,
        last_name=last_name,
        company_id=company.id if company else None,
        role=role if company else "guest",
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def user_factory():
    """Return make_user for tests needing extra members."""
    return make_user


@pytest.fixture()
def company():
    """Company with the default stage catalog."""
    c = Company(name="Acme Manufacturing")
    _db.session.add(c)
    _db.session.flush()
    seed_default_templates(c.id)
    _db.session.commit()
    return c


@pytest.fixture()
def admin(company):
    return make_user("admin@acme.io", company, role="admin", first_name="Ada", last_name="Admin")


@pytest.fixture()
def member(company):
    return make_user("member@acme.io", company, role="user", first_name="Max", last_name="Member")


@pytest.fixture()
def outsider():
    """Admin of an unrelated company."""
    other = Company(name="Other Corp")
    _db.session.add(other)
    _db.session.flush()
    seed_default_templates(other.id)
    _db.session.commit()
    return make_user("boss@other.io", other, role="admin")


@pytest.fixture()
def auth_headers(app):
    """Return a function building Authorization headers for ``user``."""
    def _headers(user):
        token = generate_access_token(user.id, user.company_id, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def project(client, admin, auth_headers):
    """Project created through the API with every default stage."""
    res = client.post(
        f"{API}/projects",
        json={
            "name": "Desk Lamp",
            "responsibleUserId": admin.id,
            "products": [
                {"name": "Lamp white", "article": "L-100"},
                {"name": "Lamp black", "article": "L-101"},
            ],
        },
        headers=auth_headers(admin),
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()
