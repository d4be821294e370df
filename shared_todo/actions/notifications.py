from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.config import settings
from shared_todo.errors import NotFound
from shared_todo.models import Notification, User
from shared_todo.realtime import change_feed

TASK_SHARED = "task_shared"
COLLABORATOR_REMOVED = "collaborator_removed"


def add_notification(
  db: AsyncSession,
  *,
  user_id: str,
  type: str,
  title: str,
  message: str,
  task_id: str | None = None,
) -> Notification:
  n = Notification(user_id=user_id, type=type, title=title, message=message, task_id=task_id, is_read=False)
  db.add(n)
  return n


async def publish_inserted(notifications: list[Notification]) -> None:
  for n in notifications:
    await change_feed.publish(change_feed.row_event("notifications", "INSERT", n, frozenset({n.user_id})))


async def list_notifications(db: AsyncSession, *, actor: User, limit: int | None = None) -> list[Notification]:
  size = max(1, min(int(limit or settings.notifications_page_size), 200))
  res = await db.execute(
    select(Notification)
    .where(Notification.user_id == actor.id)
    .order_by(Notification.created_at.desc(), Notification.id.desc())
    .limit(size)
  )
  return list(res.scalars().all())


async def mark_notification_read(db: AsyncSession, *, actor: User, notification_id: str) -> None:
  res = await db.execute(
    update(Notification)
    .where(Notification.id == notification_id, Notification.user_id == actor.id)
    .values(is_read=True)
  )
  if res.rowcount == 0:
    raise NotFound("Notification not found")
  await db.commit()


async def mark_all_notifications_read(db: AsyncSession, *, actor: User) -> int:
  res = await db.execute(
    update(Notification).where(Notification.user_id == actor.id, Notification.is_read.is_(False)).values(is_read=True)
  )
  await db.commit()
  return int(res.rowcount or 0)
