from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
  """Timezone-aware UTC timestamps on every backend (SQLite drops tzinfo)."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value, dialect):
    if value is None:
      return None
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

  def process_result_value(self, value, dialect):
    if value is not None and value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
  return str(uuid.uuid4())


PRIORITIES = ("low", "medium", "high")


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  email_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  verification_token_hash: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  due_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")  # low | medium | high
  is_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


class TaskShare(Base):
  __tablename__ = "task_shares"
  __table_args__ = (UniqueConstraint("task_id", "shared_with_email", name="ux_task_shares_task_email"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
  owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
  shared_with_email: Mapped[str] = mapped_column(String, nullable=False, index=True)
  shared_with_user_id: Mapped[str | None] = mapped_column(
    String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
  )
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class UserTaskOrder(Base):
  __tablename__ = "user_task_order"
  __table_args__ = (UniqueConstraint("user_id", "task_id", name="ux_user_task_order_user_task"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  # No FK to tasks: rows for deleted tasks are left behind and simply never match.
  task_id: Mapped[str] = mapped_column(String(36), nullable=False)
  sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class Notification(Base):
  __tablename__ = "notifications"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)  # task_shared | collaborator_removed
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  task_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class TaskAuditLog(Base):
  __tablename__ = "task_audit_logs"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
  action_type: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  performed_by_user_id: Mapped[str] = mapped_column(String(36), nullable=False)
  performed_by_email: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
