"""initial_bidding_workflow_schema

Creates the bidding-process workflow tables:
  - departments, resource_sources, users
  - bidding_modalities, modality_step_templates
  - processes, process_steps, process_participants
  - notifications, app_settings

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 7c1e2a9b4d10
Revises:
Create Date: 2026-10-16 09:12:44.518302
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e2a9b4d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Reference data ────────────────────────────────────────────────────
    if "departments" not in existing:
        op.create_table(
            "departments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "resource_sources" not in existing:
        op.create_table(
            "resource_sources",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column(
                "role", sa.String(length=20), nullable=False, server_default="common",
                comment="common | admin",
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("role IN ('common','admin')", name="ck_user_role"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )
        op.create_index("ix_users_department_id", "users", ["department_id"])

    if "bidding_modalities" not in existing:
        op.create_table(
            "bidding_modalities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column(
                "deadline_days", sa.Integer(), nullable=False, server_default="0",
                comment="Business days until the process deadline",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("deadline_days >= 0", name="ck_modality_deadline_days"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "modality_step_templates" not in existing:
        op.create_table(
            "modality_step_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("modality_id", sa.Integer(), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("step_name", sa.String(length=300), nullable=False),
            sa.Column(
                "phase", sa.String(length=50), nullable=True,
                comment="Iniciação | Preparação | Execução | Finalização",
            ),
            sa.Column("department_id", sa.Integer(), nullable=False),
            sa.Column(
                "time_limit_days", sa.Integer(), nullable=True,
                comment="Business days allotted to this step (NULL = no step due date)",
            ),
            sa.ForeignKeyConstraint(["modality_id"], ["bidding_modalities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("modality_id", "sequence", name="uq_step_template_sequence"),
        )
        op.create_index(
            "ix_modality_step_templates_modality_id", "modality_step_templates", ["modality_id"],
        )

    # ── Processes ─────────────────────────────────────────────────────────
    if "processes" not in existing:
        op.create_table(
            "processes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("pbdoc_number", sa.String(length=60), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("modality_id", sa.Integer(), nullable=False),
            sa.Column("source_id", sa.Integer(), nullable=False),
            sa.Column("responsible_id", sa.Integer(), nullable=False),
            sa.Column("responsible_since", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "current_department_id", sa.Integer(), nullable=True,
                comment="Department currently holding custody",
            ),
            sa.Column(
                "central_de_compras", sa.String(length=60), nullable=True,
                comment="Process number at the central purchasing office",
            ),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("return_comments", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_by", sa.Integer(), nullable=True),
            sa.CheckConstraint(
                "status IN ('draft','in_progress','completed','canceled','overdue')",
                name="ck_process_status",
            ),
            sa.CheckConstraint("priority IN ('low','medium','high')", name="ck_process_priority"),
            sa.ForeignKeyConstraint(["modality_id"], ["bidding_modalities.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["source_id"], ["resource_sources.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["responsible_id"], ["users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["current_department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("pbdoc_number"),
        )
        for column in ("modality_id", "source_id", "responsible_id",
                       "current_department_id", "status", "deleted_at"):
            op.create_index(f"ix_processes_{column}", "processes", [column])

    if "process_steps" not in existing:
        op.create_table(
            "process_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("process_id", sa.Integer(), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("step_name", sa.String(length=300), nullable=False),
            sa.Column("phase", sa.String(length=50), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=False),
            sa.Column(
                "state", sa.String(length=20), nullable=False, server_default="pending",
                comment="pending | completed | completed_rejected",
            ),
            sa.Column("observations", sa.Text(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.Integer(), nullable=True),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "state IN ('pending','completed','completed_rejected')",
                name="ck_process_step_state",
            ),
            sa.ForeignKeyConstraint(["process_id"], ["processes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["completed_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("process_id", "sequence", name="uq_process_step_sequence"),
        )
        op.create_index("ix_process_steps_process_id", "process_steps", ["process_id"])

    if "process_participants" not in existing:
        op.create_table(
            "process_participants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("process_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column(
                "role", sa.String(length=20), nullable=False, server_default="viewer",
                comment="viewer | editor | owner",
            ),
            sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.CheckConstraint("role IN ('viewer','editor','owner')", name="ck_participant_role"),
            sa.CheckConstraint(
                "user_id IS NOT NULL OR department_id IS NOT NULL",
                name="ck_participant_target",
            ),
            sa.ForeignKeyConstraint(["process_id"], ["processes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("process_id", "user_id", "department_id"):
            op.create_index(f"ix_process_participants_{column}", "process_participants", [column])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("process_id", sa.Integer(), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("recipient_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["process_id"], ["processes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("event", "process_id", "recipient_id"):
            op.create_index(f"ix_notifications_{column}", "notifications", [column])

    if "app_settings" not in existing:
        op.create_table(
            "app_settings",
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("value", sa.Integer(), nullable=False),
            sa.Column("updated_by", sa.Integer(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["updated_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("key"),
        )


def downgrade():
    for table in (
        "app_settings",
        "notifications",
        "process_participants",
        "process_steps",
        "processes",
        "modality_step_templates",
        "bidding_modalities",
        "users",
        "resource_sources",
        "departments",
    ):
        op.drop_table(table)
