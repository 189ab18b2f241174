"""
SourceTrack: manufacturing project tracker.
Flask Application Factory.

Usage:
    from sourcetrack import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from werkzeug.exceptions import HTTPException

from sourcetrack.auth import init_auth
from sourcetrack.config import config
from sourcetrack.core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NoCompanyError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sourcetrack.middleware.jwt_auth import init_jwt_middleware
from sourcetrack.middleware.logging_config import configure_logging
from sourcetrack.middleware.rate_limiter import init_rate_limits
from sourcetrack.middleware.timing import init_request_timing
from sourcetrack.models import db
from sourcetrack.services.user_service import LoginRateLimitedError, UserServiceError
from sourcetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-blueprint limits only; storage from RATELIMIT_STORAGE_URI
)


def _register_error_handlers(app):
    """Translate service-layer exceptions into the standard error body.

    Every handler rolls the session back so a failed request never leaves
    half-applied state in the scoped session.
    """

    @app.errorhandler(ValidationError)
    def _validation(e):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(e), status=400, details=e.details)

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        db.session.rollback()
        logger.info("Not found: %s", e)
        return api_error(E.NOT_FOUND, f"{e.resource} not found")

    @app.errorhandler(NoCompanyError)
    def _no_company(e):
        db.session.rollback()
        return api_error(E.NO_COMPANY, str(e))

    @app.errorhandler(PermissionDeniedError)
    def _forbidden(e):
        db.session.rollback()
        logger.warning("Permission denied path=%s: %s", request.path, e)
        return api_error(E.FORBIDDEN, str(e))

    @app.errorhandler(ConflictError)
    def _conflict(e):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(e), details={e.field: "Already in use"})

    @app.errorhandler(ExternalServiceError)
    def _upstream(e):
        db.session.rollback()
        code = E.TRANSLATION_UNAVAILABLE if e.status_code == 503 else E.UPSTREAM
        return api_error(code, str(e), status=e.status_code)

    @app.errorhandler(UserServiceError)
    def _user_service(e):
        db.session.rollback()
        if isinstance(e, LoginRateLimitedError):
            return api_error(
                E.RATE_LIMITED, e.message, status=429,
                details={"retry_after": e.retry_after},
            )
        code = E.UNAUTHORIZED if e.status_code == 401 else E.VALIDATION_INVALID
        return api_error(code, e.message, status=e.status_code)

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(HTTPException)
    def _http(e):
        if request.path.startswith("/api/"):
            return {"error": e.description or e.name, "code": f"HTTP_{e.code}"}, e.code
        return e

    @app.errorhandler(Exception)
    def _unexpected(e):
        db.session.rollback()
        logger.exception("Unhandled error endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def _register_blueprints(app):
    from sourcetrack.blueprints.auth_bp import auth_bp
    from sourcetrack.blueprints.catalog_bp import catalog_bp
    from sourcetrack.blueprints.company_bp import company_bp
    from sourcetrack.blueprints.dashboard_bp import dashboard_bp
    from sourcetrack.blueprints.export_bp import export_bp
    from sourcetrack.blueprints.health_bp import health_bp
    from sourcetrack.blueprints.project_bp import project_bp
    from sourcetrack.blueprints.stage_bp import stage_bp
    from sourcetrack.blueprints.task_bp import task_bp
    from sourcetrack.blueprints.template_bp import template_bp
    from sourcetrack.blueprints.translate_bp import translate_bp

    for bp in (
        health_bp, auth_bp, company_bp, template_bp, project_bp, stage_bp,
        task_bp, catalog_bp, translate_bp, export_bp, dashboard_bp,
    ):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed-templates")
    @click.option("--company-id", type=int, default=None, help="Seed a single company.")
    def seed_templates_cmd(company_id):
        """Seed the default stage templates for companies with an empty registry."""
        from sourcetrack.models.auth import Company
        from sourcetrack.services.template_service import seed_default_templates

        q = Company.query
        if company_id is not None:
            q = q.filter_by(id=company_id)
        total = 0
        for company in q.order_by(Company.id).all():
            count = seed_default_templates(company.id)
            if count:
                click.echo(f"company {company.id}: seeded {count} templates")
            total += count
        db.session.commit()
        logger.info("seed-templates finished: %d templates created", total)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_auth(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from sourcetrack.models import auth as _auth_models          # noqa: F401
    from sourcetrack.models import catalog as _catalog_models    # noqa: F401
    from sourcetrack.models import history as _history_models    # noqa: F401
    from sourcetrack.models import project as _project_models    # noqa: F401
    from sourcetrack.models import stage as _stage_models        # noqa: F401
    from sourcetrack.models import template as _template_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own ALTERs) ──
    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    _register_error_handlers(app)
    _register_blueprints(app)
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
