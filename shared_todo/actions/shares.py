from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.actions.notifications import COLLABORATOR_REMOVED, TASK_SHARED, add_notification, publish_inserted
from shared_todo.audit import write_audit
from shared_todo.errors import AlreadyShared, Forbidden, NotFound, TaskNotFound, ValidationFailed
from shared_todo.models import Notification, Task, TaskShare, User, new_id
from shared_todo.policies import share_visible_to, task_audience, task_visible_to
from shared_todo.realtime import change_feed

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
  raw = (email or "").strip()
  if not raw:
    raise ValidationFailed("Email is required", field="email")
  try:
    return validate_email(raw, check_deliverability=False).normalized.lower()
  except EmailNotValidError as exc:
    raise ValidationFailed("Please enter a valid email address", field="email") from exc


async def _owned_task(db: AsyncSession, *, actor: User, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id, task_visible_to(actor.id)))
  t = res.scalar_one_or_none()
  if not t:
    raise TaskNotFound()
  if t.user_id != actor.id:
    raise Forbidden("You can only share your own tasks")
  return t


async def _publish_share(share: TaskShare, type_: str, audience: frozenset[str]) -> None:
  await change_feed.publish(change_feed.row_event("task_shares", type_, share, audience))


async def share_todo(db: AsyncSession, *, actor: User, task_id: str, email: str) -> TaskShare:
  target = normalize_email(email)
  t = await _owned_task(db, actor=actor, task_id=task_id)
  if target == (actor.email or "").lower():
    raise ValidationFailed("You cannot share a task with yourself", field="email")

  dup = await db.execute(select(TaskShare.id).where(TaskShare.task_id == t.id, TaskShare.shared_with_email == target))
  if dup.scalar_one_or_none() is not None:
    raise AlreadyShared()

  ures = await db.execute(select(User).where(User.email == target))
  collaborator = ures.scalar_one_or_none()

  share = TaskShare(
    id=new_id(),
    task_id=t.id,
    owner_id=actor.id,
    shared_with_email=target,
    shared_with_user_id=collaborator.id if collaborator else None,
  )
  db.add(share)
  write_audit(db, task_id=t.id, action_type="collaborator_added", message=f"Added collaborator: {target}", actor=actor)
  notes: list[Notification] = []
  if collaborator:
    notes.append(
      add_notification(
        db,
        user_id=collaborator.id,
        type=TASK_SHARED,
        title="Task Shared",
        message=f'{actor.email} shared "{t.title}" with you',
        task_id=t.id,
      )
    )
  try:
    await db.commit()
  except IntegrityError as exc:
    # Lost a race with a concurrent share of the same email.
    await db.rollback()
    raise AlreadyShared() from exc

  audience = await task_audience(db, t.id, t.user_id)
  await _publish_share(share, "INSERT", audience)
  await publish_inserted(notes)
  return share


async def get_collaborators(db: AsyncSession, *, actor: User, task_id: str) -> list[TaskShare]:
  res = await db.execute(
    select(TaskShare)
    .where(TaskShare.task_id == task_id, share_visible_to(actor.id))
    .order_by(TaskShare.created_at.asc(), TaskShare.id.asc())
  )
  return list(res.scalars().all())


async def remove_collaborator(db: AsyncSession, *, actor: User, task_id: str, email: str) -> None:
  """
  Revoke one collaborator's access. A collaborator with an account is notified,
  and the notification row is written before the share row goes away.
  """
  target = normalize_email(email)
  t = await _owned_task(db, actor=actor, task_id=task_id)

  res = await db.execute(select(TaskShare).where(TaskShare.task_id == t.id, TaskShare.shared_with_email == target))
  share = res.scalar_one_or_none()
  if not share:
    raise NotFound("Collaborator not found")
  audience = await task_audience(db, t.id, t.user_id)

  notes: list[Notification] = []
  if share.shared_with_user_id:
    notes.append(
      add_notification(
        db,
        user_id=share.shared_with_user_id,
        type=COLLABORATOR_REMOVED,
        title="Access Removed",
        message=f'You have been removed from "{t.title or "a task"}"',
        task_id=t.id,
      )
    )
    await db.flush()

  await db.execute(
    delete(TaskShare).where(TaskShare.task_id == t.id, TaskShare.shared_with_email == target, TaskShare.owner_id == actor.id)
  )
  write_audit(db, task_id=t.id, action_type="collaborator_removed", message=f"Removed collaborator: {target}", actor=actor)
  await db.commit()

  await _publish_share(share, "DELETE", audience)
  await publish_inserted(notes)


async def resolve_pending_shares(db: AsyncSession, *, user: User) -> list[TaskShare]:
  """
  Attach shares addressed to ``user.email`` before the account existed, and
  notify the user about each one. The caller commits.
  """
  res = await db.execute(
    select(TaskShare, Task.title, User.email)
    .join(Task, Task.id == TaskShare.task_id)
    .join(User, User.id == TaskShare.owner_id)
    .where(TaskShare.shared_with_email == user.email.lower(), TaskShare.shared_with_user_id.is_(None))
  )
  resolved: list[TaskShare] = []
  for share, title, owner_email in res.all():
    share.shared_with_user_id = user.id
    add_notification(
      db,
      user_id=user.id,
      type=TASK_SHARED,
      title="Task Shared",
      message=f'{owner_email} shared "{title}" with you',
      task_id=share.task_id,
    )
    resolved.append(share)
  if resolved:
    logger.info("resolved %s pending share(s) for user=%s", len(resolved), user.id)
  return resolved
