"""Project domain model — infrastructure and web-dev projects."""

from datetime import datetime, timezone

from itdesk.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_TYPES = frozenset({"INFRASTRUCTURE", "WEB_DEV"})

PROJECT_STATUSES = frozenset({"PLANNING", "IN_PROGRESS", "ON_HOLD", "COMPLETED"})

# Fixed, forward-only order of infrastructure phases
PHASE_ORDER = ("PROPOSAL", "RKB", "DISBURSEMENT", "EXECUTION", "COMPLETED")


class Project(db.Model):
    """IT project.  Only INFRASTRUCTURE projects carry a ``current_phase``."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(
        db.String(20), nullable=False, default="INFRASTRUCTURE",
        comment="INFRASTRUCTURE | WEB_DEV",
    )
    status = db.Column(
        db.String(20), nullable=False, default="PLANNING",
        comment="PLANNING | IN_PROGRESS | ON_HOLD | COMPLETED",
    )
    current_phase = db.Column(
        db.String(20), nullable=True,
        comment="PROPOSAL | RKB | DISBURSEMENT | EXECUTION | COMPLETED (NULL for WEB_DEV)",
    )
    manager_id = db.Column(db.Integer, nullable=True, index=True)

    # ── Infrastructure request details ──
    category = db.Column(db.String(100), nullable=True)
    location = db.Column(db.String(200), nullable=True)
    requested_by = db.Column(db.String(150), nullable=True)
    estimated_budget = db.Column(db.Numeric(18, 2), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    # ── Web-dev details ──
    website_name = db.Column(db.String(200), nullable=True)
    environment = db.Column(db.String(50), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Workflow sub-records ──
    proposal = db.relationship(
        "Proposal", back_populates="project", uselist=False,
        cascade="all, delete-orphan",
    )
    rkb_submission = db.relationship(
        "RkbSubmission", back_populates="project", uselist=False,
        cascade="all, delete-orphan",
    )
    rkb_items = db.relationship(
        "RkbItem", back_populates="project",
        cascade="all, delete-orphan", order_by="RkbItem.id",
    )
    disbursement = db.relationship(
        "Disbursement", back_populates="project", uselist=False,
        cascade="all, delete-orphan",
    )
    execution_logs = db.relationship(
        "InfraExecution", back_populates="project",
        cascade="all, delete-orphan", order_by="InfraExecution.id",
    )

    __table_args__ = (
        db.Index("ix_projects_type_phase", "type", "current_phase"),
    )

    @property
    def is_infrastructure(self) -> bool:
        return self.current_phase is not None

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "status": self.status,
            "current_phase": self.current_phase,
            "manager_id": self.manager_id,
            "category": self.category,
            "location": self.location,
            "requested_by": self.requested_by,
            "estimated_budget": float(self.estimated_budget) if self.estimated_budget is not None else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "website_name": self.website_name,
            "environment": self.environment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name} [{self.current_phase}]>"
