"""Row-level visibility rules, evaluated by the database as query filters.

Rows a user may not touch are filtered out rather than reported, so a write
through one of these filters that matches nothing reads as "not found".
"""

from __future__ import annotations

from sqlalchemy import ColumnElement, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.models import Task, TaskShare


def task_owned_by(user_id: str) -> ColumnElement[bool]:
  return Task.user_id == user_id


def task_shared_with(user_id: str) -> ColumnElement[bool]:
  return exists().where(TaskShare.task_id == Task.id, TaskShare.shared_with_user_id == user_id)


def task_visible_to(user_id: str) -> ColumnElement[bool]:
  # Owners and collaborators may read, edit, toggle and view history.
  return or_(task_owned_by(user_id), task_shared_with(user_id))


def share_visible_to(user_id: str) -> ColumnElement[bool]:
  return or_(TaskShare.owner_id == user_id, TaskShare.shared_with_user_id == user_id)


async def task_audience(db: AsyncSession, task_id: str, owner_id: str) -> frozenset[str]:
  """User ids allowed to see ``task_id``: the owner plus every joined collaborator."""
  res = await db.execute(
    select(TaskShare.shared_with_user_id).where(TaskShare.task_id == task_id, TaskShare.shared_with_user_id.is_not(None))
  )
  return frozenset({owner_id, *[uid for uid in res.scalars().all() if uid]})
