"""
IT Desk — Infrastructure Workflow
Flask Application Factory.

Usage:
    from itdesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from itdesk.config import config
from itdesk.models import db
from itdesk.middleware.logging_config import configure_logging
from itdesk.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def _check_workflow_config(app):
    from itdesk.services.execution_service import PROGRESS_POLICIES

    policy = app.config.get("EXECUTION_PROGRESS_POLICY")
    if policy not in PROGRESS_POLICIES:
        raise RuntimeError(
            f"EXECUTION_PROGRESS_POLICY must be one of {PROGRESS_POLICIES}, got {policy!r}"
        )
    if not app.config.get("APPROVER_ROLES"):
        raise RuntimeError("APPROVER_ROLES must name at least one role")


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
    _check_workflow_config(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from itdesk.models import project as _project_models    # noqa: F401
    from itdesk.models import infra as _infra_models        # noqa: F401
    from itdesk.models import audit as _audit_models        # noqa: F401

    # ── Auto-create tables for local SQLite databases ────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        if not app.config.get("TESTING"):
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from itdesk.blueprints.health_bp import health_bp
    from itdesk.blueprints.infra_workflow_bp import infra_workflow_bp
    from itdesk.blueprints.project_bp import project_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(infra_workflow_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    from itdesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)

    return app
