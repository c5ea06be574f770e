"""
Rate limiting configuration.

The Limiter instance is created in itdesk/__init__.py with no default limits;
this module applies per-blueprint limits.  Approve / reject endpoints carry an
additional per-route ``DECISION_RATE_LIMIT`` declared in the blueprint.

Usage:
    from itdesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def decision_limit() -> str:
    """Limit string for approve / reject, read from config at request time."""
    from flask import current_app

    return current_app.config.get("DECISION_RATE_LIMIT", "30 per minute")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Workflow endpoints:  60/minute
        - Project endpoints:   200/minute
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=%s)", app.config.get("TESTING"))
        return

    bp = app.blueprints.get("infra_workflow")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("projects")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — workflow: %s, projects: %s, decisions: %s",
        WRITE_LIMIT, READ_LIMIT, app.config.get("DECISION_RATE_LIMIT"),
    )
