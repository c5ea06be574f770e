"""
Project service — creation, lookup and the full infrastructure project view.

Infrastructure projects start in phase PROPOSAL with status PLANNING.
WEB_DEV projects carry no phase and never enter the approval workflow.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from itdesk.core.exceptions import NotFoundError, ValidationError
from itdesk.models import db
from itdesk.models.audit import safe_audit
from itdesk.models.project import PROJECT_TYPES, Project
from itdesk.services.execution_service import list_execution_logs
from itdesk.utils.helpers import parse_date_input, parse_decimal

logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "description", "category", "location", "requested_by",
    "website_name", "environment",
)


def _validate(data: dict) -> dict:
    data = data or {}
    errors = {}
    clean = {}

    name = str(data.get("name") or "").strip()
    if len(name) < 3:
        errors["name"] = "must be at least 3 characters"
    clean["name"] = name

    project_type = str(data.get("type") or "INFRASTRUCTURE").strip().upper()
    if project_type not in PROJECT_TYPES:
        errors["type"] = f"must be one of {sorted(PROJECT_TYPES)}"
    clean["type"] = project_type

    manager_id = data.get("manager_id")
    if manager_id not in (None, ""):
        try:
            clean["manager_id"] = int(manager_id)
        except (TypeError, ValueError):
            errors["manager_id"] = "must be an integer"

    try:
        budget = parse_decimal(data.get("estimated_budget"))
        if budget is not None and budget < 0:
            raise ValueError("must be >= 0")
        clean["estimated_budget"] = budget
    except ValueError as exc:
        errors["estimated_budget"] = str(exc)

    for key in ("start_date", "end_date"):
        try:
            parsed = parse_date_input(data.get(key))
            clean[key] = parsed.date() if parsed else None
        except ValueError as exc:
            errors[key] = str(exc)

    if clean.get("start_date") and clean.get("end_date") and clean["end_date"] < clean["start_date"]:
        errors["end_date"] = "must not be before start_date"

    if errors:
        raise ValidationError(
            f"Invalid project: {', '.join(sorted(errors))}",
            details=errors,
        )

    for key in _TEXT_FIELDS:
        value = data.get(key)
        if value is not None:
            value = str(value).strip() or None
        clean[key] = value
    return clean


def create_project(data: dict, *, actor: str = "system") -> Project:
    """Create a project.  INFRASTRUCTURE projects start in phase PROPOSAL.

    Raises:
        ValidationError: name shorter than 3 characters, unknown type, bad
            dates or budget.
    """
    clean = _validate(data)
    project = Project(
        status="PLANNING",
        current_phase="PROPOSAL" if clean["type"] == "INFRASTRUCTURE" else None,
        **clean,
    )
    db.session.add(project)
    db.session.flush()
    safe_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.create",
        actor=actor,
        project_id=project.id,
        diff={"type": project.type, "current_phase": project.current_phase},
    )
    db.session.commit()

    logger.info(
        "Project created: %s",
        project.name,
        extra={"project_id": project.id, "phase": project.current_phase, "actor": actor},
    )
    return project


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def list_projects(project_type: str | None = None) -> list[Project]:
    """Projects ordered by most recently updated, optionally filtered by type."""
    stmt = select(Project).order_by(Project.updated_at.desc(), Project.id.desc())
    if project_type:
        project_type = project_type.upper()
        if project_type not in PROJECT_TYPES:
            raise ValidationError(
                f"Unknown project type: {project_type}",
                details={"type": f"must be one of {sorted(PROJECT_TYPES)}"},
            )
        stmt = stmt.where(Project.type == project_type)
    return list(db.session.execute(stmt).scalars())


def get_full_project_data(project_id: int) -> dict:
    """Project with every workflow sub-record, eagerly loaded.

    Execution logs are newest first; ``current_progress`` is derived from
    the latest log.
    """
    project = db.session.execute(
        select(Project)
        .where(Project.id == project_id)
        .options(
            selectinload(Project.proposal),
            selectinload(Project.rkb_submission),
            selectinload(Project.rkb_items),
            selectinload(Project.disbursement),
        )
    ).scalar_one_or_none()
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    logs = list_execution_logs(project_id)
    return {
        **project.to_dict(),
        "proposal": project.proposal.to_dict() if project.proposal else None,
        "rkb_submission": project.rkb_submission.to_dict() if project.rkb_submission else None,
        "rkb_items": [item.to_dict() for item in project.rkb_items],
        "disbursement": project.disbursement.to_dict() if project.disbursement else None,
        "execution_logs": [log.to_dict() for log in logs],
        "current_progress": logs[0].progress_percentage if logs else 0,
    }
