from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.actions.todos import (
  TaskEntry,
  TaskListing,
  add_todo,
  delete_all_todos,
  delete_completed_todos,
  delete_todo,
  edit_todo,
  list_tasks,
  toggle_todo,
  update_task_order,
)
from shared_todo.audit import list_task_audit_logs
from shared_todo.deps import get_current_user, get_db
from shared_todo.models import Task, TaskAuditLog, User
from shared_todo.schemas import (
  AuditOut,
  DeleteOut,
  TaskCreateIn,
  TaskListOut,
  TaskOrderIn,
  TaskOrderOut,
  TaskOut,
  TaskToggleIn,
  TaskUpdateIn,
)

router = APIRouter(prefix="/todos", tags=["todos"])


def _task_out(t: Task, *, kind: str = "owned", owner_email: str | None = None) -> TaskOut:
  return TaskOut(
    kind=kind,
    id=t.id,
    userId=t.user_id,
    title=t.title,
    description=t.description,
    dueDate=t.due_date,
    priority=t.priority,
    isComplete=bool(t.is_complete),
    createdAt=t.created_at,
    isShared=kind == "shared",
    ownerEmail=owner_email,
  )


def _entry_out(e: TaskEntry) -> TaskOut:
  return _task_out(e.task, kind=e.kind, owner_email=e.owner_email)


def listing_out(listing: TaskListing) -> TaskListOut:
  return TaskListOut(
    incomplete=[_entry_out(e) for e in listing.incomplete],
    complete=[_entry_out(e) for e in listing.complete],
  )


def _audit_out(a: TaskAuditLog) -> AuditOut:
  return AuditOut(
    id=a.id,
    taskId=a.task_id,
    actionType=a.action_type,
    message=a.message,
    performedByUserId=a.performed_by_user_id,
    performedByEmail=a.performed_by_email,
    createdAt=a.created_at,
  )


def _out_for(t: Task, user: User) -> TaskOut:
  if t.user_id == user.id:
    return _task_out(t)
  return _task_out(t, kind="shared")


@router.get("", response_model=TaskListOut)
async def get_todos(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskListOut:
  return listing_out(await list_tasks(db, actor=user))


@router.post("", response_model=TaskOut, status_code=201)
async def create_todo(payload: TaskCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  return _task_out(await add_todo(db, actor=user, payload=payload))


@router.delete("", response_model=DeleteOut)
async def delete_many(
  scope: Literal["completed", "all"] = Query(...),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> DeleteOut:
  if scope == "completed":
    n = await delete_completed_todos(db, actor=user)
  else:
    n = await delete_all_todos(db, actor=user)
  return DeleteOut(ok=True, deleted=n)


# Registered before "/{task_id}" routes so "order" is never read as an id.
@router.put("/order", response_model=TaskOrderOut)
async def put_order(payload: TaskOrderIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOrderOut:
  result = await update_task_order(db, actor=user, task_ids=payload.taskIds)
  return TaskOrderOut(saved=result.saved, failed=result.failed)


@router.patch("/{task_id}", response_model=TaskOut)
async def patch_todo(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  return _out_for(await edit_todo(db, actor=user, task_id=task_id, payload=payload), user)


@router.delete("/{task_id}", response_model=DeleteOut)
async def delete_one(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> DeleteOut:
  await delete_todo(db, actor=user, task_id=task_id)
  return DeleteOut(ok=True, deleted=1)


@router.post("/{task_id}/toggle", response_model=TaskOut)
async def toggle(
  task_id: str,
  payload: TaskToggleIn | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  desired = payload.isComplete if payload else None
  return _out_for(await toggle_todo(db, actor=user, task_id=task_id, is_complete=desired), user)


@router.get("/{task_id}/history", response_model=list[AuditOut])
async def history(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[AuditOut]:
  return [_audit_out(a) for a in await list_task_audit_logs(db, task_id=task_id, actor=user)]
