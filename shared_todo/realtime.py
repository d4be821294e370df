"""In-process change feed for row-level insert/update/delete events.

Actions publish one ``ChangeEvent`` per committed row change together with the
set of users allowed to see that row; subscribers only ever receive events they
are in the audience of.
"""

from __future__ import annotations

import inspect
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

TABLES = ("tasks", "task_shares", "notifications")
EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")

ChangeCallback = Callable[["ChangeEvent"], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ChangeEvent:
  table: str
  type: str
  record: dict[str, Any]
  audience: frozenset[str] = field(default_factory=frozenset)

  def public(self) -> dict[str, Any]:
    return {"table": self.table, "eventType": self.type, "record": _jsonable(self.record)}


@dataclass(frozen=True)
class Subscription:
  handle: int
  table: str
  event: str
  user_id: str
  callback: ChangeCallback

  def matches(self, ev: ChangeEvent) -> bool:
    if ev.table != self.table:
      return False
    if self.event != "*" and self.event != ev.type:
      return False
    return self.user_id in ev.audience


def _jsonable(record: dict[str, Any]) -> dict[str, Any]:
  return {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in record.items()}


class ChangeFeed:
  def __init__(self) -> None:
    self._lock = Lock()
    self._subs: dict[int, Subscription] = {}
    self._ids = itertools.count(1)

  async def subscribe(self, table: str, event: str, callback: ChangeCallback, *, user_id: str) -> int:
    if table not in TABLES:
      raise ValueError(f"Unknown table: {table}")
    ev = (event or "*").upper()
    if ev != "*" and ev not in EVENT_TYPES:
      raise ValueError(f"Unknown event filter: {event}")
    with self._lock:
      handle = next(self._ids)
      self._subs[handle] = Subscription(handle=handle, table=table, event=ev, user_id=user_id, callback=callback)
    return handle

  async def unsubscribe(self, handle: int) -> None:
    with self._lock:
      self._subs.pop(handle, None)

  def subscriber_count(self, table: str | None = None) -> int:
    with self._lock:
      return sum(1 for s in self._subs.values() if table is None or s.table == table)

  async def publish(self, ev: ChangeEvent) -> int:
    with self._lock:
      targets = [s for s in self._subs.values() if s.matches(ev)]
    delivered = 0
    for sub in targets:
      try:
        result = sub.callback(ev)
        if inspect.isawaitable(result):
          await result
        delivered += 1
      except Exception:
        logger.exception("change feed callback failed table=%s event=%s handle=%s", ev.table, ev.type, sub.handle)
    return delivered

  def row_event(self, table: str, type_: str, row: Any, audience: frozenset[str]) -> ChangeEvent:
    record = {c.key: getattr(row, c.key) for c in row.__table__.columns}
    return ChangeEvent(table=table, type=type_, record=record, audience=audience)

  def reset(self) -> None:
    with self._lock:
      self._subs.clear()


change_feed = ChangeFeed()
