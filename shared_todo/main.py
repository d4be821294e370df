from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import delete
from starlette.middleware.trustedhost import TrustedHostMiddleware

from shared_todo.config import settings
from shared_todo.db import SessionLocal, create_all
from shared_todo.errors import RateLimited, TodoError
from shared_todo.models import Session as DbSession
from shared_todo.rate_limit import limiter
from shared_todo.routers.auth import pages as pages_router, router as auth_router
from shared_todo.routers.notifications import router as notifications_router
from shared_todo.routers.realtime import router as realtime_router
from shared_todo.routers.shares import router as shares_router
from shared_todo.routers.todos import router as todos_router

logging.basicConfig(
  level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Shared Todo API", version=settings.app_version)


@app.exception_handler(TodoError)
async def _todo_error_handler(_, exc: TodoError) -> JSONResponse:
  headers = None
  if isinstance(exc, RateLimited):
    headers = {"Retry-After": str(limiter.window_seconds)}
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()}, headers=headers)


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(pages_router)
app.include_router(todos_router)
app.include_router(shares_router)
app.include_router(notifications_router)
app.include_router(realtime_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


async def _purge_expired_sessions() -> int:
  async with SessionLocal() as db:
    res = await db.execute(delete(DbSession).where(DbSession.expires_at < datetime.now(timezone.utc)))
    await db.commit()
    return int(res.rowcount or 0)


@app.on_event("startup")
async def _startup() -> None:
  if settings.create_tables_on_start:
    await create_all()
  purged = await _purge_expired_sessions()
  if purged:
    logger.info("purged %s expired session(s)", purged)
