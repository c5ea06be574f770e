"""
IT Desk — Infrastructure Workflow
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for workflow events.
"""

import json
import logging
from datetime import datetime, timezone

from itdesk.models import db

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "project", "proposal", "rkb", "rkb_item", "disbursement", "execution",
}

AUDIT_ACTIONS = {
    # Stage lifecycle
    "proposal.save", "proposal.submit", "proposal.approve", "proposal.reject",
    "rkb.save", "rkb.submit", "rkb.approve", "rkb.reject",
    "disbursement.save", "disbursement.submit", "disbursement.approve", "disbursement.reject",
    # RKB items
    "rkb_item.add",
    "rkb_item.remove",
    # Project lifecycle
    "project.create",
    "project.advance_phase",
    "project.complete",
    # Execution
    "execution.log",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every workflow event.

    One row per action.  ``diff_json`` carries old→new snapshot
    for status and phase changes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )

    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="project | proposal | rkb | rkb_item | disbursement | execution",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(
        db.String(60), nullable=False,
        comment="rkb.approve | project.advance_phase | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")

    diff_json = db.Column(
        db.Text, default="{}",
        comment="JSON: {field: {old, new}}",
    )

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    project_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        project_id=project_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


def safe_audit(**kwargs) -> AuditLog | None:
    """Write an audit row inside a savepoint; failures never abort the caller.

    A failed insert rolls back only the savepoint, so the surrounding
    workflow transaction stays usable.
    """
    try:
        with db.session.begin_nested():
            return write_audit(**kwargs)
    except Exception:
        logger.warning(
            "Audit write failed for %s", kwargs.get("action"), exc_info=True,
            extra={"project_id": kwargs.get("project_id")},
        )
        return None
