from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.actions.shares import get_collaborators, remove_collaborator, share_todo
from shared_todo.deps import get_current_user, get_db
from shared_todo.models import TaskShare, User
from shared_todo.schemas import CollaboratorOut, ShareIn

router = APIRouter(prefix="/todos/{task_id}/shares", tags=["shares"])


def _collaborator_out(s: TaskShare) -> CollaboratorOut:
  return CollaboratorOut(
    id=s.id,
    taskId=s.task_id,
    email=s.shared_with_email,
    userId=s.shared_with_user_id,
    joined=s.shared_with_user_id is not None,
    createdAt=s.created_at,
  )


@router.get("", response_model=list[CollaboratorOut])
async def list_collaborators(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[CollaboratorOut]:
  return [_collaborator_out(s) for s in await get_collaborators(db, actor=user, task_id=task_id)]


@router.post("", response_model=CollaboratorOut, status_code=201)
async def add_collaborator(
  task_id: str,
  payload: ShareIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CollaboratorOut:
  return _collaborator_out(await share_todo(db, actor=user, task_id=task_id, email=payload.email))


@router.delete("")
async def delete_collaborator(
  task_id: str,
  email: str = Query(..., max_length=320),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await remove_collaborator(db, actor=user, task_id=task_id, email=email)
  return {"ok": True}
