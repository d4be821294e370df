from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, Form, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared_todo.actions.auth import sign_in, sign_out, sign_up, verify_email
from shared_todo.actions.todos import list_tasks
from shared_todo.config import settings
from shared_todo.deps import client_ip, get_current_user, get_db, get_optional_user
from shared_todo.errors import TodoError, signin_error_code, signin_error_message
from shared_todo.models import Session as DbSession, User
from shared_todo.routers.todos import listing_out
from shared_todo.schemas import SignInIn, SignInPageOut, SignUpIn, SignUpOut, TaskListOut, UserOut
from shared_todo.security import SESSION_COOKIE_NAME

router = APIRouter(prefix="/auth", tags=["auth"])
pages = APIRouter(tags=["pages"])


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, emailVerified=u.email_verified_at is not None)


def _set_session_cookie(response: Response, s: DbSession) -> None:
  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=int(max(1, int(settings.session_ttl_days)) * 86400),
    expires=s.expires_at,
    path="/",
  )


@router.post("/signup", response_model=SignUpOut, status_code=201)
async def signup(payload: SignUpIn, db: AsyncSession = Depends(get_db)) -> SignUpOut:
  result = await sign_up(db, email=payload.email, password=payload.password)
  return SignUpOut(user=_user_out(result.user), verificationRequired=result.verification_token is not None)


@router.get("/verify", response_model=UserOut)
async def verify(token: str = Query(..., min_length=8, max_length=200), db: AsyncSession = Depends(get_db)) -> UserOut:
  return _user_out(await verify_email(db, token=token))


@router.post("/signin", response_model=UserOut)
async def signin(payload: SignInIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  u, s = await sign_in(
    db,
    email=payload.email,
    password=payload.password,
    ip=client_ip(request),
    user_agent=request.headers.get("user-agent"),
  )
  _set_session_cookie(response, s)
  return _user_out(u)


@router.post("/signout")
async def signout(
  response: Response,
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await sign_out(db, session_id=session_id)
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/", domain=settings.cookie_domain or None)
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return _user_out(user)


@pages.post("/signin")
async def signin_form(
  request: Request,
  email: str = Form(""),
  password: str = Form(""),
  db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
  try:
    _, s = await sign_in(db, email=email, password=password, ip=client_ip(request), user_agent=request.headers.get("user-agent"))
  except TodoError as exc:
    return RedirectResponse(f"/signin?error={signin_error_code(exc)}", status_code=status.HTTP_303_SEE_OTHER)
  response = RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)
  _set_session_cookie(response, s)
  return response


@pages.get("/signin", response_model=SignInPageOut)
async def signin_page(error: str | None = None, user: User | None = Depends(get_optional_user)):
  if user is not None:
    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)
  return SignInPageOut(error=error, message=signin_error_message(error))


@pages.get("/", response_model=TaskListOut)
async def home(user: User | None = Depends(get_optional_user), db: AsyncSession = Depends(get_db)):
  if user is None:
    return RedirectResponse("/signin", status_code=status.HTTP_303_SEE_OTHER)
  return listing_out(await list_tasks(db, actor=user))
