"""Infrastructure workflow blueprint.

REST API over the five-phase approval workflow.

Endpoint groups:
  Full project view     GET    /api/v1/infra/projects/<id>
  Stage fields          PUT    /api/v1/infra/projects/<id>/<stage>
  Stage submit          POST   /api/v1/infra/projects/<id>/<stage>/submit
  Stage decisions       POST   /api/v1/infra/projects/<id>/<stage>/approve   (approver roles)
                        POST   /api/v1/infra/projects/<id>/<stage>/reject    (approver roles)
  RKB items             POST   /api/v1/infra/projects/<id>/rkb/items
                        DELETE /api/v1/infra/projects/<id>/rkb/items/<item_id>
  Execution logs        GET    /api/v1/infra/projects/<id>/execution-logs
                        POST   /api/v1/infra/projects/<id>/execution-logs
  Completion            POST   /api/v1/infra/projects/<id>/complete
  Manual reconciliation POST   /api/v1/infra/projects/<id>/advance           (ADMIN)

<stage> is one of proposal | rkb | disbursement.
Caller identity comes from X-User / X-User-Role headers.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from itdesk import limiter
from itdesk.blueprints import register_error_handlers
from itdesk.middleware.rate_limiter import decision_limit
from itdesk.middleware.roles import current_actor, require_approver, require_role
from itdesk.services import execution_service, phase_controller, project_service, rkb_budget_service
from itdesk.services.infra_workflow_service import get_stage
from itdesk.utils.helpers import unit_of_work

logger = logging.getLogger(__name__)

infra_workflow_bp = Blueprint("infra_workflow", __name__, url_prefix="/api/v1/infra")
register_error_handlers(infra_workflow_bp)

_STAGE = "<any(proposal, rkb, disbursement):stage>"


def _body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


# ═════════════════════════════════════════════════════════════════════════
# Full project view
# ═════════════════════════════════════════════════════════════════════════


@infra_workflow_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_full_project(project_id):
    return jsonify(project_service.get_full_project_data(project_id))


# ═════════════════════════════════════════════════════════════════════════
# Stage lifecycle  (proposal | rkb | disbursement)
# ═════════════════════════════════════════════════════════════════════════


@infra_workflow_bp.route(f"/projects/<int:project_id>/{_STAGE}", methods=["PUT"])
def save_stage(project_id, stage):
    """Create or update stage fields (row returns to DRAFT)."""
    row = get_stage(stage).upsert(project_id, _body(), actor=current_actor())
    return jsonify(row.to_dict())


@infra_workflow_bp.route(f"/projects/<int:project_id>/{_STAGE}/submit", methods=["POST"])
def submit_stage(project_id, stage):
    row = get_stage(stage).submit(project_id, actor=current_actor())
    return jsonify(row.to_dict())


@infra_workflow_bp.route(f"/projects/<int:project_id>/{_STAGE}/approve", methods=["POST"])
@require_approver
@limiter.limit(decision_limit)
def approve_stage(project_id, stage):
    """Approve a PENDING stage; the project advances one phase in the same transaction.

    Body (optional): {"approved_by": "<name>"} — defaults to the X-User header.
    """
    actor = current_actor()
    row = get_stage(stage).approve(project_id, _body().get("approved_by") or actor, actor=actor)
    project = project_service.get_project(project_id)
    return jsonify({
        "stage": row.to_dict(),
        "current_phase": project.current_phase,
        "status": project.status,
    })


@infra_workflow_bp.route(f"/projects/<int:project_id>/{_STAGE}/reject", methods=["POST"])
@require_approver
@limiter.limit(decision_limit)
def reject_stage(project_id, stage):
    """Body: {"reason": "<text>"} (required)."""
    row = get_stage(stage).reject(project_id, _body().get("reason"), actor=current_actor())
    return jsonify(row.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# RKB items
# ═════════════════════════════════════════════════════════════════════════


@infra_workflow_bp.route("/projects/<int:project_id>/rkb/items", methods=["POST"])
def add_rkb_item(project_id):
    item, total = rkb_budget_service.add_rkb_item(project_id, _body(), actor=current_actor())
    return jsonify({"item": item.to_dict(), "total_budget": float(total)}), 201


@infra_workflow_bp.route("/projects/<int:project_id>/rkb/items/<int:item_id>", methods=["DELETE"])
def remove_rkb_item(project_id, item_id):
    total = rkb_budget_service.remove_rkb_item(
        item_id, actor=current_actor(), project_id=project_id,
    )
    return jsonify({"deleted": item_id, "total_budget": float(total)})


# ═════════════════════════════════════════════════════════════════════════
# Execution & completion
# ═════════════════════════════════════════════════════════════════════════


@infra_workflow_bp.route("/projects/<int:project_id>/execution-logs", methods=["GET"])
def list_execution_logs(project_id):
    project_service.get_project(project_id)
    logs = execution_service.list_execution_logs(project_id)
    return jsonify({
        "items": [log.to_dict() for log in logs],
        "current_progress": logs[0].progress_percentage if logs else 0,
    })


@infra_workflow_bp.route("/projects/<int:project_id>/execution-logs", methods=["POST"])
def add_execution_log(project_id):
    log = execution_service.add_execution_log(project_id, _body(), actor=current_actor())
    return jsonify(log.to_dict()), 201


@infra_workflow_bp.route("/projects/<int:project_id>/complete", methods=["POST"])
def complete_project(project_id):
    project = execution_service.complete_project(project_id, actor=current_actor())
    return jsonify(project.to_dict())


@infra_workflow_bp.route("/projects/<int:project_id>/advance", methods=["POST"])
@require_role("ADMIN")
def advance_project(project_id):
    """Manually advance a project whose stage is APPROVED but phase was not moved.

    Body (optional): {"expected_phase": "<PHASE>"}.
    """
    actor = current_actor()
    expected = _body().get("expected_phase")
    with unit_of_work("project.advance_phase"):
        new_phase = phase_controller.advance_phase(
            project_id, expected_phase=expected, actor=actor,
        )
    logger.info(
        "Manual phase advance by %s", actor,
        extra={"project_id": project_id, "phase": new_phase, "actor": actor},
    )
    return jsonify({"project_id": project_id, "current_phase": new_phase})
