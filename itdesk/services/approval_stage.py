"""
Infrastructure Workflow — generic approvable stage.

Proposal, RKB submission and Disbursement share one approval sub-machine:

    (absent) ──save──▶ DRAFT ──submit──▶ PENDING ──approve──▶ APPROVED
                         ▲                  │
                         └──save── REJECTED ◀┘ reject

Rules enforced for every stage:
  - Each operation requires the project to be in the stage's own phase
    (``WrongPhase`` otherwise).
  - Fields are editable only while DRAFT or REJECTED (Proposal also
    REVISED); PENDING and APPROVED rows raise ``StageLocked`` on save.
  - ``submit`` is idempotent on PENDING and refused on APPROVED.
  - ``approve`` / ``reject`` require PENDING.
  - ``approve`` emits ``StageApproved``; the phase advance runs in the same
    transaction, so a failed advance leaves the stage PENDING.
  - The rejection reason survives re-save and resubmit and is cleared only
    on approval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from itdesk.core.exceptions import (
    ConcurrentModification,
    InvalidStageTransition,
    NotFoundError,
    StageLocked,
    ValidationError,
)
from itdesk.models import db
from itdesk.models.audit import safe_audit
from itdesk.services.phase_controller import (
    StageApproved,
    ensure_phase,
    lock_project,
    on_stage_approved,
)
from itdesk.utils.helpers import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageSpec:
    """Static description of one approvable stage.

    Attributes:
        model: SQLAlchemy model holding the stage row (unique per project).
        phase: Project phase the stage belongs to.
        label: Human-readable stage name used in errors.
        audit_entity: Prefix for audit actions (``<audit_entity>.approve``).
        editable_statuses: Statuses in which ``upsert`` may change fields.
        fields: Editable field name → coercer.  Coercers raise ValueError.
        rejection_field: Column that stores the rejection reason.
    """

    model: type
    phase: str
    label: str
    audit_entity: str
    editable_statuses: frozenset
    fields: dict[str, Callable] = field(default_factory=dict)
    rejection_field: str = "rejection_reason"


class ApprovableStage:
    """Save / submit / approve / reject for one :class:`StageSpec`."""

    def __init__(self, spec: StageSpec) -> None:
        self.spec = spec

    def __repr__(self) -> str:
        return f"<ApprovableStage {self.spec.label}>"

    # ── Helpers ──────────────────────────────────────────────────────────

    def get(self, project_id: int, *, lock: bool = False):
        """Return the stage row for ``project_id`` or None."""
        model = self.spec.model
        stmt = select(model).where(model.project_id == project_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return db.session.execute(stmt).scalar_one_or_none()

    def _coerce(self, fields: dict | None) -> dict:
        """Keep known fields only and coerce them.  Unknown keys are ignored."""
        changes = {}
        errors = {}
        for name, raw in (fields or {}).items():
            coercer = self.spec.fields.get(name)
            if coercer is None:
                continue
            try:
                changes[name] = coercer(raw)
            except ValueError as exc:
                errors[name] = str(exc)
        if errors:
            raise ValidationError(
                f"Invalid {self.spec.label} fields: {', '.join(sorted(errors))}",
                details=errors,
            )
        return changes

    def create(self, project_id: int, status: str):
        """Insert the stage row; a concurrent insert raises ``ConcurrentModification``."""
        row = self.spec.model(project_id=project_id, approval_status=status)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrentModification(
                project_id, f"{self.spec.label} was created concurrently",
            ) from exc
        return row

    def _load(self, project_id: int):
        project = lock_project(project_id)
        ensure_phase(project, self.spec.phase)
        return project, self.get(project_id, lock=True)

    def _audit(self, row, action: str, actor: str, diff: dict | None = None) -> None:
        safe_audit(
            entity_type=self.spec.audit_entity,
            entity_id=row.id,
            action=f"{self.spec.audit_entity}.{action}",
            actor=actor,
            project_id=row.project_id,
            diff=diff,
        )

    def _log(self, message: str, row, actor: str) -> None:
        logger.info(
            message,
            self.spec.label,
            extra={
                "project_id": row.project_id,
                "stage": self.spec.label,
                "phase": self.spec.phase,
                "approval_status": row.approval_status,
                "actor": actor,
            },
        )

    # ── Operations ───────────────────────────────────────────────────────

    def upsert(self, project_id: int, fields: dict | None, *, actor: str = "system"):
        """Create or update the stage's fields; the row ends in DRAFT.

        Raises:
            ValidationError: a field failed coercion (nothing is written).
            NotFoundError, NotInfrastructureProject, AlreadyCompleted,
            WrongPhase: project guards.
            StageLocked: the row is PENDING or APPROVED.
        """
        changes = self._coerce(fields)

        with unit_of_work(f"{self.spec.audit_entity}.save"):
            _, row = self._load(project_id)
            old_status = None
            if row is None:
                row = self.create(project_id, "DRAFT")
            else:
                old_status = row.approval_status
                if old_status not in self.spec.editable_statuses:
                    raise StageLocked(self.spec.label, old_status)

            for name, value in changes.items():
                setattr(row, name, value)
            row.approval_status = "DRAFT"
            db.session.flush()
            self._audit(
                row, "save", actor,
                diff={
                    "approval_status": {"old": old_status, "new": "DRAFT"},
                    "fields": sorted(changes),
                },
            )

        self._log("%s saved", row, actor)
        return row

    def submit(self, project_id: int, *, actor: str = "system"):
        """Move the stage to PENDING, creating it when absent.

        Raises:
            StageLocked: the row is already APPROVED.
        """
        with unit_of_work(f"{self.spec.audit_entity}.submit"):
            _, row = self._load(project_id)
            if row is None:
                old_status = None
                row = self.create(project_id, "PENDING")
            else:
                old_status = row.approval_status
                if old_status == "APPROVED":
                    raise StageLocked(self.spec.label, old_status)
                if old_status == "PENDING":
                    return row
                row.approval_status = "PENDING"
                db.session.flush()

            self._audit(
                row, "submit", actor,
                diff={"approval_status": {"old": old_status, "new": "PENDING"}},
            )

        self._log("%s submitted for approval", row, actor)
        return row

    def approve(self, project_id: int, approved_by: str | None, *, actor: str = "system"):
        """Approve a PENDING stage and advance the project out of its phase.

        Both writes commit together; if the phase advance raises, the stage
        stays PENDING.

        Raises:
            ValidationError: no approver name.
            NotFoundError: stage row missing.
            InvalidStageTransition: stage not PENDING.
            PhaseNotApproved, AlreadyCompleted, WrongPhase: from the advance.
        """
        approver = (approved_by or actor or "").strip()
        if not approver:
            raise ValidationError("approved_by is required", details={"approved_by": "required"})

        with unit_of_work(f"{self.spec.audit_entity}.approve"):
            _, row = self._load(project_id)
            if row is None:
                raise NotFoundError(resource=self.spec.label, resource_id=project_id)
            if row.approval_status != "PENDING":
                raise InvalidStageTransition(self.spec.label, "approve", row.approval_status)

            row.approval_status = "APPROVED"
            row.approved_by = approver
            row.approval_date = datetime.now(timezone.utc)
            setattr(row, self.spec.rejection_field, None)
            db.session.flush()
            self._audit(
                row, "approve", actor,
                diff={
                    "approval_status": {"old": "PENDING", "new": "APPROVED"},
                    "approved_by": approver,
                },
            )

            on_stage_approved(StageApproved(
                project_id=project_id,
                phase=self.spec.phase,
                stage=self.spec.label,
                actor=actor,
            ))

        self._log("%s approved", row, actor)
        return row

    def reject(self, project_id: int, reason: str | None, *, actor: str = "system"):
        """Reject a PENDING stage.  The project phase is not touched.

        Raises:
            ValidationError: empty reason.
            NotFoundError: stage row missing.
            InvalidStageTransition: stage not PENDING.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason is required", details={"reason": "required"})

        with unit_of_work(f"{self.spec.audit_entity}.reject"):
            _, row = self._load(project_id)
            if row is None:
                raise NotFoundError(resource=self.spec.label, resource_id=project_id)
            if row.approval_status != "PENDING":
                raise InvalidStageTransition(self.spec.label, "reject", row.approval_status)

            row.approval_status = "REJECTED"
            setattr(row, self.spec.rejection_field, reason)
            db.session.flush()
            self._audit(
                row, "reject", actor,
                diff={
                    "approval_status": {"old": "PENDING", "new": "REJECTED"},
                    "reason": reason,
                },
            )

        self._log("%s rejected", row, actor)
        return row
