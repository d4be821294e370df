from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TEST_DB = Path(tempfile.gettempdir()) / f"shared_todo_test_{os.getpid()}.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB}")
os.environ.setdefault("CREATE_TABLES_ON_START", "false")

from shared_todo.config import settings
from shared_todo.db import SessionLocal, create_all, engine
from shared_todo.main import app
from shared_todo.models import Notification, Session, Task, TaskAuditLog, TaskShare, User, UserTaskOrder
from shared_todo.rate_limit import limiter
from shared_todo.realtime import change_feed

PASSWORD = "correct-horse-1"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  change_feed.reset()
  await create_all()
  async with SessionLocal() as db:
    await db.execute(delete(TaskAuditLog))
    await db.execute(delete(Notification))
    await db.execute(delete(UserTaskOrder))
    await db.execute(delete(TaskShare))
    await db.execute(delete(Task))
    await db.execute(delete(Session))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. shared_todo_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


def make_client() -> AsyncClient:
  return AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost")


@pytest.fixture
async def client() -> AsyncClient:
  async with make_client() as c:
    yield c


@pytest.fixture
async def other_client() -> AsyncClient:
  async with make_client() as c:
    yield c


async def signup(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
  res = await client.post("/auth/signup", json={"email": email, "password": password})
  assert res.status_code == 201, res.text
  return res.json()["user"]


async def signin(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
  res = await client.post("/auth/signin", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "st_session=" in cookie
  return res.json()


async def signup_and_signin(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
  await signup(client, email, password)
  return await signin(client, email, password)


async def create_task(client: AsyncClient, title: str, **fields) -> dict:
  res = await client.post("/todos", json={"title": title, **fields})
  assert res.status_code == 201, res.text
  return res.json()


async def user_id_for(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one().id
