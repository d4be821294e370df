from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.actions.notifications import list_notifications, mark_all_notifications_read, mark_notification_read
from shared_todo.deps import get_current_user, get_db
from shared_todo.models import Notification, User
from shared_todo.schemas import NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_out(n: Notification) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    type=n.type,
    title=n.title,
    message=n.message,
    taskId=n.task_id,
    isRead=bool(n.is_read),
    createdAt=n.created_at,
  )


@router.get("", response_model=list[NotificationOut])
async def get_notifications(
  limit: int | None = Query(default=None, ge=1, le=200),
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
  return [_notification_out(n) for n in await list_notifications(db, actor=actor, limit=limit)]


@router.post("/read-all")
async def read_all(actor: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  n = await mark_all_notifications_read(db, actor=actor)
  return {"ok": True, "updated": n}


@router.post("/{notification_id}/read")
async def read_one(notification_id: str, actor: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await mark_notification_read(db, actor=actor, notification_id=notification_id)
  return {"ok": True}
