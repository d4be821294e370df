from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.models import Task, TaskAuditLog, User
from shared_todo.policies import task_visible_to


def write_audit(db: AsyncSession, *, task_id: str, action_type: str, message: str, actor: User) -> TaskAuditLog:
  # Added to the caller's transaction: the entry commits together with the mutation it describes.
  entry = TaskAuditLog(
    task_id=task_id,
    action_type=action_type,
    message=message,
    performed_by_user_id=actor.id,
    performed_by_email=actor.email,
  )
  db.add(entry)
  return entry


async def list_task_audit_logs(db: AsyncSession, *, task_id: str, actor: User) -> list[TaskAuditLog]:
  visible = await db.execute(select(Task.id).where(Task.id == task_id, task_visible_to(actor.id)))
  if visible.scalar_one_or_none() is None:
    return []
  res = await db.execute(
    select(TaskAuditLog).where(TaskAuditLog.task_id == task_id).order_by(TaskAuditLog.created_at.desc(), TaskAuditLog.id.desc())
  )
  return list(res.scalars().all())
