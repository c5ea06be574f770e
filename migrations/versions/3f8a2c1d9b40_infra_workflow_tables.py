"""infra_workflow_tables

Create `projects`, the four infrastructure workflow stage tables
(proposal, RKB submission + items, disbursement, execution logs)
and the `audit_logs` trail.

Revision ID: 3f8a2c1d9b40
Revises:
Create Date: 2026-10-19 09:12:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "3f8a2c1d9b40"
down_revision = None
branch_labels = None
depends_on = None


def _stage_columns():
    return [
        sa.Column("approval_status", sa.String(length=20), nullable=False, server_default="DRAFT"),
        sa.Column("approved_by", sa.String(length=150), nullable=True),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="INFRASTRUCTURE"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PLANNING"),
            sa.Column("current_phase", sa.String(length=20), nullable=True),
            sa.Column("manager_id", sa.Integer(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("location", sa.String(length=200), nullable=True),
            sa.Column("requested_by", sa.String(length=150), nullable=True),
            sa.Column("estimated_budget", sa.Numeric(18, 2), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("website_name", sa.String(length=200), nullable=True),
            sa.Column("environment", sa.String(length=50), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_manager_id", "projects", ["manager_id"])
        op.create_index("ix_projects_type_phase", "projects", ["type", "current_phase"])

    if "infra_proposals" not in existing_tables:
        op.create_table(
            "infra_proposals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("background", sa.Text(), nullable=True),
            sa.Column("objectives", sa.Text(), nullable=True),
            sa.Column("scope", sa.Text(), nullable=True),
            sa.Column("benefits", sa.Text(), nullable=True),
            sa.Column("risk_analysis", sa.Text(), nullable=True),
            sa.Column("attachment_url", sa.String(length=500), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            *_stage_columns(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id"),
        )

    if "infra_rkb_submissions" not in existing_tables:
        op.create_table(
            "infra_rkb_submissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("submission_number", sa.String(length=100), nullable=True),
            sa.Column("justification", sa.Text(), nullable=True),
            sa.Column("total_budget", sa.Numeric(18, 2), nullable=False, server_default="0"),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            *_stage_columns(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id"),
        )

    if "infra_rkb_items" not in existing_tables:
        op.create_table(
            "infra_rkb_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("item_name", sa.String(length=200), nullable=False),
            sa.Column("specification", sa.Text(), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("unit", sa.String(length=50), nullable=False),
            sa.Column("unit_price", sa.Numeric(18, 2), nullable=False, server_default="0"),
            sa.Column("total_price", sa.Numeric(18, 2), nullable=False, server_default="0"),
            sa.Column("vendor", sa.String(length=200), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("quantity >= 1", name="ck_rkb_items_quantity_min"),
            sa.CheckConstraint("unit_price >= 0", name="ck_rkb_items_unit_price_min"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_infra_rkb_items_project_id", "infra_rkb_items", ["project_id"])

    if "infra_disbursements" not in existing_tables:
        op.create_table(
            "infra_disbursements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("approved_budget", sa.Numeric(18, 2), nullable=True),
            sa.Column("disbursed_amount", sa.Numeric(18, 2), nullable=True),
            sa.Column("disbursement_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("payment_method", sa.String(length=30), nullable=True),
            sa.Column("reference_number", sa.String(length=100), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_stage_columns(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id"),
        )

    if "infra_executions" not in existing_tables:
        op.create_table(
            "infra_executions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("activity_description", sa.Text(), nullable=False),
            sa.Column("execution_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("findings", sa.Text(), nullable=True),
            sa.Column("completed_by", sa.String(length=150), nullable=True),
            sa.Column("photo_url", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint(
                "progress_percentage >= 0 AND progress_percentage <= 100",
                name="ck_infra_executions_progress_range",
            ),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_infra_executions_project_id", "infra_executions", ["project_id"])
        op.create_index(
            "ix_infra_executions_project_date",
            "infra_executions",
            ["project_id", "execution_date"],
        )

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_project", "audit_logs", ["project_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "audit_logs" in existing_tables:
        op.drop_index("idx_audit_ts", table_name="audit_logs")
        op.drop_index("idx_audit_action", table_name="audit_logs")
        op.drop_index("idx_audit_project", table_name="audit_logs")
        op.drop_index("idx_audit_entity", table_name="audit_logs")
        op.drop_table("audit_logs")

    if "infra_executions" in existing_tables:
        op.drop_index("ix_infra_executions_project_date", table_name="infra_executions")
        op.drop_index("ix_infra_executions_project_id", table_name="infra_executions")
        op.drop_table("infra_executions")

    if "infra_rkb_items" in existing_tables:
        op.drop_index("ix_infra_rkb_items_project_id", table_name="infra_rkb_items")
        op.drop_table("infra_rkb_items")

    for table in ("infra_disbursements", "infra_rkb_submissions", "infra_proposals"):
        if table in existing_tables:
            op.drop_table(table)

    if "projects" in existing_tables:
        op.drop_index("ix_projects_type_phase", table_name="projects")
        op.drop_index("ix_projects_manager_id", table_name="projects")
        op.drop_table("projects")
