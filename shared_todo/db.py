from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from shared_todo.config import settings


def _engine_kwargs(url: str) -> dict:
  # SQLite connections are cheap and must not be shared across event loops.
  if url.startswith("sqlite"):
    return {"poolclass": NullPool}
  return {"pool_pre_ping": True}


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

if settings.database_url.startswith("sqlite"):

  @event.listens_for(engine.sync_engine, "connect")
  def _sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def create_all() -> None:
  from shared_todo.models import Base

  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
