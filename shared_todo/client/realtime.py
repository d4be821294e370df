from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol, Union

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Union[None, Awaitable[None]]]


class Feed(Protocol):
  async def subscribe(self, table: str, event: str, callback: Callback, *, user_id: str) -> int: ...

  async def unsubscribe(self, handle: int) -> None: ...


class RealtimeScope:
  """
  The three change-feed channels a task view listens on, held for the
  lifetime of the view:

  - every change on ``tasks``
  - every change on ``task_shares``
  - inserts on ``notifications``

  Use as ``async with RealtimeScope(...)``. Every handle acquired is released
  on exit, including when setup fails or is cancelled after only some of the
  channels were subscribed.
  """

  def __init__(
    self,
    feed: Feed,
    *,
    user_id: str,
    on_task_change: Callback,
    on_share_change: Callback,
    on_notification: Callback,
  ) -> None:
    self._feed = feed
    self._user_id = user_id
    self._channels = (
      ("tasks", "*", on_task_change),
      ("task_shares", "*", on_share_change),
      ("notifications", "INSERT", on_notification),
    )
    self.handles: list[int] = []
    self.closed = False

  @property
  def active(self) -> bool:
    return bool(self.handles) and not self.closed

  async def open(self) -> RealtimeScope:
    try:
      for table, event, callback in self._channels:
        self.handles.append(await self._feed.subscribe(table, event, callback, user_id=self._user_id))
    except BaseException:
      await self.close()
      raise
    return self

  async def close(self) -> None:
    handles, self.handles = self.handles, []
    self.closed = True
    for handle in handles:
      try:
        await self._feed.unsubscribe(handle)
      except Exception:
        logger.warning("failed to release realtime handle=%s", handle, exc_info=True)

  async def __aenter__(self) -> RealtimeScope:
    return await self.open()

  async def __aexit__(self, *exc_info: Any) -> None:
    await self.close()
