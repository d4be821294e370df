"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("verification_token_hash", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)
  op.create_index("ix_users_verification_token_hash", "users", ["verification_token_hash"], unique=False)

  op.create_table(
    "sessions",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
    sa.Column("is_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_user_id", "tasks", ["user_id"], unique=False)

  op.create_table(
    "task_shares",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
    sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("shared_with_email", sa.String(), nullable=False),
    sa.Column("shared_with_user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("task_id", "shared_with_email", name="ux_task_shares_task_email"),
  )
  op.create_index("ix_task_shares_task_id", "task_shares", ["task_id"], unique=False)
  op.create_index("ix_task_shares_shared_with_email", "task_shares", ["shared_with_email"], unique=False)
  op.create_index("ix_task_shares_shared_with_user_id", "task_shares", ["shared_with_user_id"], unique=False)

  op.create_table(
    "user_task_order",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("task_id", sa.String(36), nullable=False),
    sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("user_id", "task_id", name="ux_user_task_order_user_task"),
  )
  op.create_index("ix_user_task_order_user_id", "user_task_order", ["user_id"], unique=False)

  op.create_table(
    "notifications",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("task_id", sa.String(36), nullable=True),
    sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)

  op.create_table(
    "task_audit_logs",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
    sa.Column("action_type", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("performed_by_user_id", sa.String(36), nullable=False),
    sa.Column("performed_by_email", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_task_audit_logs_task_id", "task_audit_logs", ["task_id"], unique=False)


def downgrade() -> None:
  op.drop_table("task_audit_logs")
  op.drop_table("notifications")
  op.drop_table("user_task_order")
  op.drop_table("task_shares")
  op.drop_table("tasks")
  op.drop_table("sessions")
  op.drop_table("users")
