from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.audit import write_audit
from shared_todo.config import settings
from shared_todo.errors import Forbidden, TaskNotFound, ValidationFailed
from shared_todo.models import Task, TaskShare, User, UserTaskOrder, new_id
from shared_todo.ordering import ranks_for, resolve_order
from shared_todo.policies import task_audience, task_owned_by, task_visible_to
from shared_todo.realtime import change_feed
from shared_todo.schemas import TaskCreateIn, TaskUpdateIn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskEntry:
  task: Task
  kind: str  # owned | shared
  owner_email: str | None = None


@dataclass
class TaskListing:
  incomplete: list[TaskEntry] = field(default_factory=list)
  complete: list[TaskEntry] = field(default_factory=list)


@dataclass
class OrderSaveResult:
  saved: list[str] = field(default_factory=list)
  failed: list[str] = field(default_factory=list)


def _zone(tz_name: str | None) -> ZoneInfo:
  name = (tz_name or settings.default_timezone or "UTC").strip()
  try:
    return ZoneInfo(name)
  except (ZoneInfoNotFoundError, ValueError) as exc:
    raise ValidationFailed("Unknown timezone", field="timezone") from exc


def ensure_not_past(due: datetime, tz_name: str | None, *, now: datetime | None = None) -> None:
  tz = _zone(tz_name)
  today = (now or datetime.now(timezone.utc)).astimezone(tz).date()
  if due.astimezone(tz).date() < today:
    raise ValidationFailed("Due date cannot be in the past", field="dueDate")


def parse_due_date(
  value: str | None,
  tz_name: str | None,
  *,
  now: datetime | None = None,
  allow_past: bool = False,
) -> datetime | None:
  """
  Accept a local calendar date/time (``YYYY-MM-DD`` or ``YYYY-MM-DDTHH:MM``)
  interpreted in ``tz_name``, or an ISO instant with an offset, and return the
  absolute UTC instant.
  """
  s = (value or "").strip()
  if not s:
    return None
  tz = _zone(tz_name)
  try:
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  except ValueError as exc:
    raise ValidationFailed("Please select a valid date", field="dueDate") from exc
  if dt.tzinfo is None:
    dt = dt.replace(tzinfo=tz)
  dt = dt.astimezone(timezone.utc)
  if not allow_past:
    ensure_not_past(dt, tz_name, now=now)
  return dt


def clean_title(title: str | None) -> str:
  t = (title or "").strip()
  if not t:
    raise ValidationFailed("Task title is required", field="title")
  return t


def _clean_description(description: str | None) -> str | None:
  d = (description or "").strip()
  return d or None


async def _publish_task(t: Task, type_: str, audience: frozenset[str]) -> None:
  await change_feed.publish(change_feed.row_event("tasks", type_, t, audience))


async def _get_visible(db: AsyncSession, task_id: str, actor: User) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id, task_visible_to(actor.id)))
  t = res.scalar_one_or_none()
  if not t:
    raise TaskNotFound()
  return t


async def list_tasks(db: AsyncSession, *, actor: User) -> TaskListing:
  owned_res = await db.execute(select(Task).where(task_owned_by(actor.id)).order_by(Task.created_at.desc()))
  owned = [TaskEntry(task=t, kind="owned") for t in owned_res.scalars().all()]

  shared_res = await db.execute(
    select(Task, User.email)
    .join(TaskShare, TaskShare.task_id == Task.id)
    .join(User, User.id == Task.user_id)
    .where(TaskShare.shared_with_user_id == actor.id, Task.user_id != actor.id)
  )
  seen = {e.task.id for e in owned}
  shared: list[TaskEntry] = []
  for t, owner_email in shared_res.all():
    if t.id in seen:
      continue
    seen.add(t.id)
    shared.append(TaskEntry(task=t, kind="shared", owner_email=owner_email))

  order_res = await db.execute(select(UserTaskOrder.task_id, UserTaskOrder.sort_order).where(UserTaskOrder.user_id == actor.id))
  ranks = {row.task_id: row.sort_order for row in order_res.all()}

  ordered = resolve_order(owned + shared, ranks, key=lambda e: e.task.id, created=lambda e: e.task.created_at)
  return TaskListing(
    incomplete=[e for e in ordered if not e.task.is_complete],
    complete=[e for e in ordered if e.task.is_complete],
  )


async def add_todo(db: AsyncSession, *, actor: User, payload: TaskCreateIn) -> Task:
  title = clean_title(payload.title)
  due = parse_due_date(payload.dueDate, payload.timezone)
  t = Task(
    id=new_id(),
    user_id=actor.id,
    title=title,
    description=_clean_description(payload.description),
    due_date=due,
    priority=payload.priority or "medium",
    is_complete=False,
  )
  db.add(t)
  await db.flush()
  write_audit(db, task_id=t.id, action_type="created", message=f'Task created: "{title}"', actor=actor)
  await db.commit()
  await _publish_task(t, "INSERT", frozenset({actor.id}))
  return t


async def edit_todo(db: AsyncSession, *, actor: User, task_id: str, payload: TaskUpdateIn) -> Task:
  t = await _get_visible(db, task_id, actor)
  fields_set = payload.model_fields_set

  if "title" in fields_set:
    t.title = clean_title(payload.title)
  if "description" in fields_set:
    t.description = _clean_description(payload.description)
  if "dueDate" in fields_set:
    due = parse_due_date(payload.dueDate, payload.timezone, allow_past=True)
    # An unchanged, already-past due date must not block editing other fields.
    if due is not None and due != t.due_date:
      ensure_not_past(due, payload.timezone)
    t.due_date = due
  if "priority" in fields_set and payload.priority is not None:
    t.priority = payload.priority

  write_audit(db, task_id=t.id, action_type="updated", message=f'Task updated: "{t.title}"', actor=actor)
  audience = await task_audience(db, t.id, t.user_id)
  await db.commit()
  await _publish_task(t, "UPDATE", audience)
  return t


async def toggle_todo(db: AsyncSession, *, actor: User, task_id: str, is_complete: bool | None = None) -> Task:
  t = await _get_visible(db, task_id, actor)
  new_value = (not t.is_complete) if is_complete is None else bool(is_complete)
  t.is_complete = new_value
  if new_value:
    write_audit(db, task_id=t.id, action_type="completed", message=f'Marked task as completed: "{t.title}"', actor=actor)
  else:
    write_audit(db, task_id=t.id, action_type="uncompleted", message=f'Marked task as incomplete: "{t.title}"', actor=actor)
  audience = await task_audience(db, t.id, t.user_id)
  await db.commit()
  await _publish_task(t, "UPDATE", audience)
  return t


async def _delete_where(db: AsyncSession, *conditions) -> int:
  # Deletions are not audited.
  res = await db.execute(select(Task).where(*conditions))
  doomed = list(res.scalars().all())
  if not doomed:
    return 0
  audiences = {t.id: await task_audience(db, t.id, t.user_id) for t in doomed}
  await db.execute(delete(Task).where(Task.id.in_([t.id for t in doomed])))
  await db.commit()
  for t in doomed:
    await _publish_task(t, "DELETE", audiences[t.id])
  return len(doomed)


async def delete_todo(db: AsyncSession, *, actor: User, task_id: str) -> None:
  t = await _get_visible(db, task_id, actor)
  if t.user_id != actor.id:
    raise Forbidden("Only the owner can delete this task")
  await _delete_where(db, Task.id == task_id, task_owned_by(actor.id))


async def delete_completed_todos(db: AsyncSession, *, actor: User) -> int:
  return await _delete_where(db, task_owned_by(actor.id), Task.is_complete.is_(True))


async def delete_all_todos(db: AsyncSession, *, actor: User) -> int:
  return await _delete_where(db, task_owned_by(actor.id))


async def update_task_order(db: AsyncSession, *, actor: User, task_ids: list[str]) -> OrderSaveResult:
  """
  Persist a full visual order as ranks 0..N-1 for the acting user only.

  Each row is its own upsert and commit: one failing row is logged and
  reported without aborting the others. Nothing is published to the change
  feed, since the order is private to this user.
  """
  ids = [str(x).strip() for x in task_ids]
  if any(not x for x in ids):
    raise ValidationFailed("Task ids must not be empty", field="taskIds")
  if len(set(ids)) != len(ids):
    raise ValidationFailed("Task ids must be unique", field="taskIds")

  out = OrderSaveResult()
  for task_id, rank in ranks_for(ids):
    try:
      res = await db.execute(
        select(UserTaskOrder).where(UserTaskOrder.user_id == actor.id, UserTaskOrder.task_id == task_id)
      )
      row = res.scalar_one_or_none()
      if row:
        row.sort_order = rank
      else:
        db.add(UserTaskOrder(user_id=actor.id, task_id=task_id, sort_order=rank))
      await db.commit()
      out.saved.append(task_id)
    except SQLAlchemyError:
      await db.rollback()
      logger.warning("Error updating task order user=%s task=%s rank=%s", actor.id, task_id, rank, exc_info=True)
      out.failed.append(task_id)
  return out
