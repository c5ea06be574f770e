"""
IT Desk — Infrastructure Workflow
Stage sub-records of an infrastructure project.

Models:
    - Proposal:        PROPOSAL phase stage (free-text business case)
    - RkbSubmission:   RKB phase stage (procurement plan header)
    - RkbItem:         RKB line items; total_price derived, summed into total_budget
    - Disbursement:    DISBURSEMENT phase stage (fund release)
    - InfraExecution:  EXECUTION phase progress log, append-only

Each stage is unique per project and carries its own approval sub-machine:

    DRAFT ──submit──▶ PENDING ──approve──▶ APPROVED
      ▲                  │
      └──save── REJECTED ◀┘ reject
"""

from datetime import datetime, timezone

from itdesk.models import db

# ── Constants ────────────────────────────────────────────────────────────────

APPROVAL_STATUSES = frozenset({"DRAFT", "PENDING", "APPROVED", "REJECTED"})
PROPOSAL_APPROVAL_STATUSES = APPROVAL_STATUSES | {"REVISED"}

# Statuses in which stage fields may still be changed
EDITABLE_STATUSES = frozenset({"DRAFT", "REJECTED"})
PROPOSAL_EDITABLE_STATUSES = EDITABLE_STATUSES | {"REVISED"}

PAYMENT_METHODS = frozenset({"TRANSFER", "CASH", "PETTY_CASH", "CREDIT"})


def _utcnow():
    return datetime.now(timezone.utc)


def _money(value):
    return float(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value else None


class _StageColumns:
    """Columns shared by every approvable stage row."""

    approval_status = db.Column(
        db.String(20), nullable=False, default="DRAFT",
        comment="DRAFT | PENDING | APPROVED | REJECTED",
    )
    approved_by = db.Column(db.String(150), nullable=True)
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def _approval_dict(self) -> dict:
        return {
            "approval_status": self.approval_status,
            "approved_by": self.approved_by,
            "approval_date": _iso(self.approval_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Proposal(_StageColumns, db.Model):
    """Business case for an infrastructure project."""

    __tablename__ = "infra_proposals"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    background = db.Column(db.Text, nullable=True)
    objectives = db.Column(db.Text, nullable=True)
    scope = db.Column(db.Text, nullable=True)
    benefits = db.Column(db.Text, nullable=True)
    risk_analysis = db.Column(db.Text, nullable=True)
    attachment_url = db.Column(db.String(500), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    project = db.relationship("Project", back_populates="proposal")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "background": self.background,
            "objectives": self.objectives,
            "scope": self.scope,
            "benefits": self.benefits,
            "risk_analysis": self.risk_analysis,
            "attachment_url": self.attachment_url,
            "rejection_reason": self.rejection_reason,
            **self._approval_dict(),
        }

    def __repr__(self) -> str:
        return f"<Proposal project={self.project_id} {self.approval_status}>"


class RkbSubmission(_StageColumns, db.Model):
    """Procurement plan (RKB) header.  ``total_budget`` is always Σ item totals."""

    __tablename__ = "infra_rkb_submissions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    submission_number = db.Column(db.String(100), nullable=True)
    justification = db.Column(db.Text, nullable=True)
    total_budget = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    rejection_reason = db.Column(db.Text, nullable=True)

    project = db.relationship("Project", back_populates="rkb_submission")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "submission_number": self.submission_number,
            "justification": self.justification,
            "total_budget": _money(self.total_budget),
            "rejection_reason": self.rejection_reason,
            **self._approval_dict(),
        }

    def __repr__(self) -> str:
        return f"<RkbSubmission project={self.project_id} {self.approval_status}>"


class RkbItem(db.Model):
    """One line of the procurement plan.  ``total_price`` = quantity × unit_price."""

    __tablename__ = "infra_rkb_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_name = db.Column(db.String(200), nullable=False)
    specification = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit = db.Column(db.String(50), nullable=False)
    unit_price = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    vendor = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    project = db.relationship("Project", back_populates="rkb_items")

    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_rkb_items_quantity_min"),
        db.CheckConstraint("unit_price >= 0", name="ck_rkb_items_unit_price_min"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "item_name": self.item_name,
            "specification": self.specification,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price": _money(self.unit_price),
            "total_price": _money(self.total_price),
            "vendor": self.vendor,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<RkbItem #{self.id} {self.item_name} x{self.quantity}>"


class Disbursement(_StageColumns, db.Model):
    """Release of funds for the approved RKB.  Rejection reason is kept in ``notes``."""

    __tablename__ = "infra_disbursements"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    approved_budget = db.Column(db.Numeric(18, 2), nullable=True)
    disbursed_amount = db.Column(db.Numeric(18, 2), nullable=True)
    disbursement_date = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_method = db.Column(db.String(30), nullable=True)
    reference_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    project = db.relationship("Project", back_populates="disbursement")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "approved_budget": _money(self.approved_budget),
            "disbursed_amount": _money(self.disbursed_amount),
            "disbursement_date": _iso(self.disbursement_date),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            **self._approval_dict(),
        }

    def __repr__(self) -> str:
        return f"<Disbursement project={self.project_id} {self.approval_status}>"


class InfraExecution(db.Model):
    """
    Execution progress log entry.

    Append-only: rows are never updated or deleted by the workflow.
    ``progress_percentage`` is self-reported per entry; the project's current
    progress is the value of the most recent entry.
    """

    __tablename__ = "infra_executions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    activity_description = db.Column(db.Text, nullable=False)
    execution_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    findings = db.Column(db.Text, nullable=True)
    completed_by = db.Column(db.String(150), nullable=True)
    photo_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    project = db.relationship("Project", back_populates="execution_logs")

    __table_args__ = (
        db.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_infra_executions_progress_range",
        ),
        db.Index("ix_infra_executions_project_date", "project_id", "execution_date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "activity_description": self.activity_description,
            "execution_date": _iso(self.execution_date),
            "progress_percentage": self.progress_percentage,
            "findings": self.findings,
            "completed_by": self.completed_by,
            "photo_url": self.photo_url,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<InfraExecution #{self.id} project={self.project_id} {self.progress_percentage}%>"
