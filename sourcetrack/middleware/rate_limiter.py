"""
Rate limiting configuration.

Applies per-blueprint request quotas using Flask-Limiter. The Limiter
instance is created in sourcetrack/__init__.py with no default limits;
this module applies granular limits per route category.

Login throttling (per-email failure counting with lockout) is separate
and lives in ``services.user_service.LoginAttemptTracker``.

Usage:
    from sourcetrack.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# blueprint name -> limit string
BLUEPRINT_LIMITS = {
    "auth": "20/minute",
    "translate": "30/minute",
    "export": "10/minute",
    "company": "60/minute",
    "templates": "60/minute",
    "projects": "120/minute",
    "stages": "120/minute",
    "tasks": "120/minute",
    "catalog": "60/minute",
    "dashboard": "200/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints (per remote IP).

        - Auth endpoints:        20/minute (credential stuffing)
        - Translation / export:  30 and 10/minute (outbound and heavy work)
        - Mutation-heavy routes: 60-120/minute
        - Health check:          exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured for %d blueprints", len(BLUEPRINT_LIMITS)
    )
