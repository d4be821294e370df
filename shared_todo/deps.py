from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Cookie, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.db import SessionLocal
from shared_todo.errors import Unauthenticated
from shared_todo.models import Session as DbSession, User
from shared_todo.security import SESSION_COOKIE_NAME


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def user_for_session(db: AsyncSession, session_id: str | None) -> User | None:
  if not session_id:
    return None
  res = await db.execute(select(DbSession).where(DbSession.id == session_id))
  s = res.scalar_one_or_none()
  if not s or s.expires_at < datetime.now(timezone.utc):
    return None
  ures = await db.execute(select(User).where(User.id == s.user_id))
  return ures.scalar_one_or_none()


async def get_optional_user(
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User | None:
  return await user_for_session(db, session_id)


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
  if user is None:
    raise Unauthenticated()
  return user


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
