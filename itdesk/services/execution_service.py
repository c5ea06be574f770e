"""
Infrastructure Workflow — execution stage.

Execution logs are append-only progress reports.  The project's current
progress is never stored: it is the ``progress_percentage`` of the most
recent log (``execution_date`` desc, ``id`` desc), or 0 without logs.

Progress policy (``EXECUTION_PROGRESS_POLICY``):
    free_form         any 0-100 value is accepted (later entries may correct
                      earlier ones downward)
    strict_monotonic  a new entry may not report less than current progress
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import select

from itdesk.core.exceptions import ValidationError
from itdesk.models import db
from itdesk.models.audit import safe_audit
from itdesk.models.infra import InfraExecution
from itdesk.services import phase_controller
from itdesk.services.phase_controller import ensure_phase, lock_project
from itdesk.utils.helpers import parse_date_input, parse_decimal, unit_of_work

logger = logging.getLogger(__name__)

PROGRESS_POLICIES = ("free_form", "strict_monotonic")


def latest_log(project_id: int) -> InfraExecution | None:
    return db.session.execute(
        select(InfraExecution)
        .where(InfraExecution.project_id == project_id)
        .order_by(InfraExecution.execution_date.desc(), InfraExecution.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def current_progress(project_id: int) -> int:
    """Progress of the most recent execution log; 0 when there are none."""
    log = latest_log(project_id)
    return log.progress_percentage if log else 0


def list_execution_logs(project_id: int) -> list[InfraExecution]:
    """All logs for a project, newest first."""
    return list(db.session.execute(
        select(InfraExecution)
        .where(InfraExecution.project_id == project_id)
        .order_by(InfraExecution.execution_date.desc(), InfraExecution.id.desc())
    ).scalars())


def _validate_entry(data: dict) -> dict:
    data = data or {}
    errors = {}
    clean = {}

    description = str(data.get("activity_description") or "").strip()
    if len(description) < 3:
        errors["activity_description"] = "must be at least 3 characters"
    clean["activity_description"] = description

    progress = data.get("progress_percentage", 0)
    try:
        as_decimal = parse_decimal(progress)
        # 99.9 is refused, not truncated to 99
        if as_decimal is None or as_decimal != as_decimal.to_integral_value():
            raise ValueError("not an integer")
        if not 0 <= as_decimal <= 100:
            raise ValueError("out of range")
        clean["progress_percentage"] = int(as_decimal)
    except ValueError:
        errors["progress_percentage"] = "must be an integer between 0 and 100"

    try:
        clean["execution_date"] = parse_date_input(data.get("execution_date"))
    except ValueError as exc:
        errors["execution_date"] = str(exc)

    photo_url = str(data.get("photo_url") or "").strip() or None
    if photo_url is not None and len(photo_url) > 500:
        errors["photo_url"] = "must be at most 500 characters"
    clean["photo_url"] = photo_url

    if errors:
        raise ValidationError(
            f"Invalid execution log: {', '.join(sorted(errors))}",
            details=errors,
        )

    for name in ("findings", "completed_by"):
        value = data.get(name)
        if value is not None:
            value = str(value).strip() or None
        clean[name] = value
    return clean


def add_execution_log(project_id: int, data: dict, *, actor: str = "system") -> InfraExecution:
    """Append an execution log.  The project row itself is not modified.

    Raises:
        ValidationError: bad fields, or a regression under ``strict_monotonic``.
        NotFoundError, NotInfrastructureProject, AlreadyCompleted,
        WrongPhase: project guards.
    """
    clean = _validate_entry(data)
    if clean["execution_date"] is None:
        clean.pop("execution_date")
    if not clean.get("completed_by"):
        clean["completed_by"] = actor

    policy = current_app.config.get("EXECUTION_PROGRESS_POLICY", "free_form")

    with unit_of_work("execution.log"):
        project = lock_project(project_id)
        ensure_phase(project, "EXECUTION")

        if policy == "strict_monotonic":
            progress = current_progress(project_id)
            if clean["progress_percentage"] < progress:
                raise ValidationError(
                    f"Progress cannot go below the current {progress}%",
                    details={
                        "progress_percentage": clean["progress_percentage"],
                        "current_progress": progress,
                    },
                )

        log = InfraExecution(project_id=project_id, **clean)
        db.session.add(log)
        db.session.flush()

        safe_audit(
            entity_type="execution",
            entity_id=log.id,
            action="execution.log",
            actor=actor,
            project_id=project_id,
            diff={"progress_percentage": log.progress_percentage},
        )

    logger.info(
        "Execution log added",
        extra={"project_id": project_id, "progress": log.progress_percentage, "actor": actor},
    )
    return log


def complete_project(project_id: int, *, actor: str = "system"):
    """Close the project.  See :func:`phase_controller.complete_project`."""
    return phase_controller.complete_project(project_id, actor=actor)
