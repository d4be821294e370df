from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.actions.shares import normalize_email, resolve_pending_shares
from shared_todo.config import settings
from shared_todo.errors import Conflict, EmailNotVerified, InvalidCredentials, NotFound, ValidationFailed
from shared_todo.models import Session as DbSession, User, new_id
from shared_todo.rate_limit import limiter
from shared_todo.security import (
  hash_password,
  new_session_expires_at,
  verification_token_hash,
  verification_token_new,
  verify_password,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass
class SignUpResult:
  user: User
  verification_token: str | None = None


async def sign_up(db: AsyncSession, *, email: str, password: str) -> SignUpResult:
  normalized = normalize_email(email)
  if not password:
    raise ValidationFailed("Password is required", field="password")
  if len(password) < MIN_PASSWORD_LENGTH:
    raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password")

  existing = await db.execute(select(User.id).where(User.email == normalized))
  if existing.scalar_one_or_none() is not None:
    raise Conflict("User already registered")

  token: str | None = None
  u = User(id=new_id(), email=normalized, password_hash=hash_password(password))
  if settings.require_email_verification:
    token = verification_token_new()
    u.verification_token_hash = verification_token_hash(token)
  else:
    u.email_verified_at = datetime.now(timezone.utc)
  db.add(u)
  try:
    await db.flush()
  except IntegrityError as exc:
    await db.rollback()
    raise Conflict("User already registered") from exc

  await resolve_pending_shares(db, user=u)
  await db.commit()
  if token:
    logger.info("verification link for %s: /auth/verify?token=%s", normalized, token)
  return SignUpResult(user=u, verification_token=token)


async def verify_email(db: AsyncSession, *, token: str) -> User:
  res = await db.execute(select(User).where(User.verification_token_hash == verification_token_hash(token)))
  u = res.scalar_one_or_none()
  if not u:
    raise NotFound("Verification link is invalid or has already been used")
  u.email_verified_at = datetime.now(timezone.utc)
  u.verification_token_hash = None
  await db.commit()
  return u


async def sign_in(
  db: AsyncSession,
  *,
  email: str,
  password: str,
  ip: str,
  user_agent: str | None = None,
) -> tuple[User, DbSession]:
  email_key = (email or "").strip().lower()
  limiter.check_signin(ip=ip, email=email_key)

  res = await db.execute(select(User).where(User.email == email_key))
  u = res.scalar_one_or_none()
  if not u or not verify_password(password or "", u.password_hash):
    raise InvalidCredentials()
  if u.email_verified_at is None:
    raise EmailNotVerified()

  s = DbSession(
    id=new_id(),
    user_id=u.id,
    expires_at=new_session_expires_at(),
    created_ip=ip,
    user_agent=user_agent,
  )
  db.add(s)
  await resolve_pending_shares(db, user=u)
  await db.commit()
  return u, s


async def sign_out(db: AsyncSession, *, session_id: str | None) -> None:
  if not session_id:
    return
  await db.execute(delete(DbSession).where(DbSession.id == session_id))
  await db.commit()
