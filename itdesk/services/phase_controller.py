"""
Infrastructure Workflow — Phase Controller.

Owns ``Project.current_phase`` and is the only code path allowed to change it.

Phase order (forward-only, one step at a time):

    PROPOSAL → RKB → DISBURSEMENT → EXECUTION → COMPLETED

Gates: leaving PROPOSAL, RKB or DISBURSEMENT requires that phase's stage row
to be APPROVED.  EXECUTION has no stage gate; it is left only through the
explicit ``complete_project`` operation.

Stage approval does not call ``advance_phase`` directly: it emits a
``StageApproved`` event that ``on_stage_approved`` consumes inside the same
transaction, so approval and advance commit or roll back together.

Usage:
    from itdesk.services.phase_controller import advance_phase, StageApproved

    with unit_of_work("rkb.approve"):
        ...
        on_stage_approved(StageApproved(project_id=7, phase="RKB", stage="RKB"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select

from itdesk.core.exceptions import (
    AlreadyCompleted,
    NotFoundError,
    NotInfrastructureProject,
    PhaseNotApproved,
    ValidationError,
    WrongPhase,
)
from itdesk.models import db
from itdesk.models.audit import safe_audit
from itdesk.models.infra import Disbursement, Proposal, RkbSubmission
from itdesk.models.project import PHASE_ORDER, Project
from itdesk.utils.helpers import unit_of_work

logger = logging.getLogger(__name__)

# Outgoing phase → (stage model, stage label) that must be APPROVED to leave it
PHASE_GATES = {
    "PROPOSAL": (Proposal, "Proposal"),
    "RKB": (RkbSubmission, "RKB"),
    "DISBURSEMENT": (Disbursement, "Disbursement"),
}


@dataclass(frozen=True)
class StageApproved:
    """Emitted by a stage approval; consumed by :func:`on_stage_approved`."""

    project_id: int
    phase: str
    stage: str
    actor: str = "system"


# ── Phase arithmetic ─────────────────────────────────────────────────────────


def phase_index(phase: str | None) -> int:
    """Position of ``phase`` in PHASE_ORDER; -1 for None or unknown values."""
    try:
        return PHASE_ORDER.index(phase)
    except ValueError:
        return -1


def next_phase(phase: str) -> str | None:
    idx = phase_index(phase)
    if idx < 0 or idx + 1 >= len(PHASE_ORDER):
        return None
    return PHASE_ORDER[idx + 1]


# ── Loading & guards ─────────────────────────────────────────────────────────


def lock_project(project_id: int) -> Project:
    """Load a project row with ``SELECT … FOR UPDATE``.

    ``populate_existing`` refreshes an instance already in the identity map,
    so the caller always sees the committed phase once the lock is granted.

    Raises:
        NotFoundError: project does not exist.
    """
    stmt = (
        select(Project)
        .where(Project.id == project_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    project = db.session.execute(stmt).scalar_one_or_none()
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def ensure_phase(project: Project, expected: str) -> None:
    """Raise unless ``project`` is an active infrastructure project in ``expected``."""
    if project.current_phase is None:
        raise NotInfrastructureProject(project.id)
    if project.current_phase == "COMPLETED":
        raise AlreadyCompleted(project.id)
    if project.current_phase != expected:
        raise WrongPhase(project.id, expected=expected, actual=project.current_phase)


def _check_gate(project: Project) -> None:
    gate = PHASE_GATES.get(project.current_phase)
    if gate is None:
        return
    model, label = gate
    stage = db.session.execute(
        select(model).where(model.project_id == project.id)
    ).scalar_one_or_none()
    if stage is None or stage.approval_status != "APPROVED":
        raise PhaseNotApproved(label, stage.approval_status if stage else None)


# ── Operations ───────────────────────────────────────────────────────────────


def advance_phase(
    project_id: int,
    *,
    expected_phase: str | None = None,
    actor: str = "system",
) -> str:
    """Move the project one phase forward and return the resulting phase.

    Flushes but never commits; the caller owns the transaction.

    Args:
        project_id: Project to advance.
        expected_phase: The phase the caller believes it is leaving.  When the
            project has already moved past it, the call is a no-op and the
            current phase is returned.
        actor: Recorded on the audit row.

    Raises:
        NotFoundError, NotInfrastructureProject, AlreadyCompleted,
        WrongPhase (project behind ``expected_phase``), PhaseNotApproved.
    """
    if expected_phase is not None and expected_phase not in PHASE_ORDER:
        raise ValidationError(
            f"Unknown phase: {expected_phase}",
            details={"expected_phase": f"must be one of {list(PHASE_ORDER)}"},
        )

    project = lock_project(project_id)

    if project.current_phase is None:
        raise NotInfrastructureProject(project_id)

    if expected_phase is not None:
        current_idx = phase_index(project.current_phase)
        expected_idx = phase_index(expected_phase)
        if current_idx > expected_idx:
            logger.info(
                "Phase advance skipped: project already past %s",
                expected_phase,
                extra={"project_id": project_id, "phase": project.current_phase},
            )
            return project.current_phase
        if project.current_phase == "COMPLETED":
            raise AlreadyCompleted(project_id)
        if current_idx < expected_idx:
            raise WrongPhase(project_id, expected=expected_phase, actual=project.current_phase)

    if project.current_phase == "COMPLETED":
        raise AlreadyCompleted(project_id)

    _check_gate(project)

    old_phase = project.current_phase
    new_phase = next_phase(old_phase)
    project.current_phase = new_phase
    project.status = "COMPLETED" if new_phase == "COMPLETED" else "IN_PROGRESS"
    db.session.flush()

    safe_audit(
        entity_type="project",
        entity_id=project_id,
        action="project.advance_phase",
        actor=actor,
        project_id=project_id,
        diff={"current_phase": {"old": old_phase, "new": new_phase}},
    )
    logger.info(
        "Project phase advanced %s → %s",
        old_phase, new_phase,
        extra={
            "project_id": project_id,
            "from_phase": old_phase,
            "to_phase": new_phase,
            "actor": actor,
        },
    )
    return new_phase


def on_stage_approved(event: StageApproved) -> str:
    """Consume a ``StageApproved`` event by advancing out of ``event.phase``."""
    return advance_phase(
        event.project_id,
        expected_phase=event.phase,
        actor=event.actor,
    )


def complete_project(project_id: int, *, actor: str = "system") -> Project:
    """Close an infrastructure project from the EXECUTION phase.

    When ``COMPLETION_REQUIRES_FULL_PROGRESS`` is set, the latest execution
    log must report 100%.

    Raises:
        NotFoundError, NotInfrastructureProject, AlreadyCompleted,
        WrongPhase, ValidationError.
    """
    with unit_of_work("project.complete"):
        project = lock_project(project_id)
        ensure_phase(project, "EXECUTION")

        if current_app.config.get("COMPLETION_REQUIRES_FULL_PROGRESS", False):
            from itdesk.services.execution_service import current_progress

            progress = current_progress(project_id)
            if progress < 100:
                raise ValidationError(
                    "Execution progress must reach 100% before completion",
                    details={"progress": progress},
                )

        project.current_phase = "COMPLETED"
        project.status = "COMPLETED"
        db.session.flush()

        safe_audit(
            entity_type="project",
            entity_id=project_id,
            action="project.complete",
            actor=actor,
            project_id=project_id,
            diff={"current_phase": {"old": "EXECUTION", "new": "COMPLETED"}},
        )

    logger.info(
        "Project completed",
        extra={"project_id": project_id, "to_phase": "COMPLETED", "actor": actor},
    )
    return project
