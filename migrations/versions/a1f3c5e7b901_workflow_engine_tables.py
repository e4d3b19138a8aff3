"""Workflow engine: definitions, steps, processes, history, templates, notifications

Revision ID: a1f3c5e7b901
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "a1f3c5e7b901"
down_revision = None
branch_labels = None
depends_on = None


def _step_columns():
    return [
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("approver_role", sa.String(100), server_default=""),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("conditions", sa.JSON()),
    ]


def upgrade():
    op.create_table(
        "workflow_definitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_workflow_definitions_status", "workflow_definitions", ["status"])
    op.create_index("ix_workflow_definitions_created_by", "workflow_definitions", ["created_by"])

    op.create_table(
        "workflow_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("definition_id", sa.Integer(),
                  sa.ForeignKey("workflow_definitions.id", ondelete="CASCADE"), nullable=False),
        *_step_columns(),
    )
    op.create_index("ix_workflow_steps_definition_id", "workflow_steps", ["definition_id"])

    op.create_table(
        "workflow_processes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("definition_id", sa.Integer(), sa.ForeignKey("workflow_definitions.id"), nullable=False),
        sa.Column("definition_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("document_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("current_step_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("initial_data", sa.JSON()),
        sa.Column("started_by", sa.String(64), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("active_key", sa.String(120), unique=True),
        sa.Column("lock_version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_workflow_processes_definition_id", "workflow_processes", ["definition_id"])
    op.create_index("ix_workflow_processes_document_id", "workflow_processes", ["document_id"])
    op.create_index("ix_workflow_processes_status", "workflow_processes", ["status"])

    op.create_table(
        "workflow_process_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("process_id", sa.Integer(),
                  sa.ForeignKey("workflow_processes.id", ondelete="CASCADE"), nullable=False),
        *_step_columns(),
        sa.UniqueConstraint("process_id", "position", name="uq_process_step_position"),
    )
    op.create_index("ix_workflow_process_steps_process_id", "workflow_process_steps", ["process_id"])

    op.create_table(
        "workflow_process_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("process_id", sa.Integer(),
                  sa.ForeignKey("workflow_processes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_index", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(64)),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("comment", sa.Text(), server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_workflow_process_history_process_id", "workflow_process_history", ["process_id"])

    op.create_table(
        "workflow_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("category", sa.String(60), server_default="general"),
        sa.Column("steps", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_workflow_templates_category", "workflow_templates", ["category"])
    op.create_index("ix_workflow_templates_created_by", "workflow_templates", ["created_by"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient", sa.String(64), nullable=False),
        sa.Column("event_kind", sa.String(20), nullable=False),
        sa.Column("severity", sa.String(20), server_default="info"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text(), server_default=""),
        sa.Column("definition_id", sa.Integer()),
        sa.Column("process_id", sa.Integer()),
        sa.Column("step_index", sa.Integer()),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_recipient", "notifications", ["recipient"])
    op.create_index("ix_notifications_process_id", "notifications", ["process_id"])


def downgrade():
    op.drop_index("ix_notifications_process_id", table_name="notifications")
    op.drop_index("ix_notifications_recipient", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_workflow_templates_created_by", table_name="workflow_templates")
    op.drop_index("ix_workflow_templates_category", table_name="workflow_templates")
    op.drop_table("workflow_templates")
    op.drop_index("ix_workflow_process_history_process_id", table_name="workflow_process_history")
    op.drop_table("workflow_process_history")
    op.drop_index("ix_workflow_process_steps_process_id", table_name="workflow_process_steps")
    op.drop_table("workflow_process_steps")
    op.drop_index("ix_workflow_processes_status", table_name="workflow_processes")
    op.drop_index("ix_workflow_processes_document_id", table_name="workflow_processes")
    op.drop_index("ix_workflow_processes_definition_id", table_name="workflow_processes")
    op.drop_table("workflow_processes")
    op.drop_index("ix_workflow_steps_definition_id", table_name="workflow_steps")
    op.drop_table("workflow_steps")
    op.drop_index("ix_workflow_definitions_created_by", table_name="workflow_definitions")
    op.drop_index("ix_workflow_definitions_status", table_name="workflow_definitions")
    op.drop_table("workflow_definitions")
