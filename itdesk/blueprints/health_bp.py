"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database connectivity and workflow tables
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from itdesk.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

_WORKFLOW_TABLES = (
    "projects",
    "infra_proposals",
    "infra_rkb_submissions",
    "infra_rkb_items",
    "infra_disbursements",
    "infra_executions",
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Workflow tables ──────────────────────────────────────────────
    if overall:
        missing = []
        for table in _WORKFLOW_TABLES:
            try:
                db.session.execute(db.text(f"SELECT 1 FROM {table} LIMIT 1"))
            except Exception:
                db.session.rollback()
                missing.append(table)
        if missing:
            overall = False
            checks["schema"] = {"status": "error", "missing": missing}
            logger.error("Health check — missing tables: %s", ", ".join(missing))
        else:
            checks["schema"] = {"status": "ok"}

    checks["app"] = {
        "name": "IT Desk Infrastructure Workflow",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
