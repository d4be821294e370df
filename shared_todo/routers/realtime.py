from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from shared_todo.db import SessionLocal
from shared_todo.deps import user_for_session
from shared_todo.realtime import ChangeEvent, change_feed
from shared_todo.security import SESSION_COOKIE_NAME

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


def _now() -> str:
  return datetime.now(timezone.utc).isoformat()


async def _sender(websocket: WebSocket, queue: asyncio.Queue) -> None:
  while True:
    message = await queue.get()
    await websocket.send_json(message)


async def stop_sender(sender: asyncio.Task, user_id: str) -> None:
  sender.cancel()
  with contextlib.suppress(asyncio.CancelledError):
    try:
      await sender
    except Exception:
      logger.warning("realtime sender failed user=%s", user_id, exc_info=True)


@router.websocket("/realtime")
async def realtime_endpoint(websocket: WebSocket) -> None:
  """
  Bridge the change feed to one browser-style client.

  Messages from the client: ``subscribe`` (table, event), ``unsubscribe``
  (handle) and ``ping``. Every subscription made over this socket is released
  when it closes.
  """
  async with SessionLocal() as db:
    user = await user_for_session(db, websocket.cookies.get(SESSION_COOKIE_NAME))
  if user is None:
    await websocket.close(code=4001, reason="Not authenticated")
    return

  await websocket.accept()
  queue: asyncio.Queue = asyncio.Queue()
  handles: set[int] = set()
  sender = asyncio.create_task(_sender(websocket, queue))

  def forward(ev: ChangeEvent) -> None:
    queue.put_nowait({"type": "change", **ev.public(), "timestamp": _now()})

  await websocket.send_json({"type": "connected", "userId": user.id, "timestamp": _now()})
  try:
    while True:
      data = await websocket.receive_json()
      msg_type = data.get("type", "") if isinstance(data, dict) else ""

      if msg_type == "ping":
        queue.put_nowait({"type": "pong", "timestamp": _now()})

      elif msg_type == "subscribe":
        table = str(data.get("table", ""))
        event = str(data.get("event", "*") or "*")
        try:
          handle = await change_feed.subscribe(table, event, forward, user_id=user.id)
        except ValueError as exc:
          queue.put_nowait({"type": "error", "message": str(exc)})
          continue
        handles.add(handle)
        queue.put_nowait({"type": "subscribed", "table": table, "event": event.upper(), "handle": handle})

      elif msg_type == "unsubscribe":
        try:
          handle = int(data.get("handle"))
        except (TypeError, ValueError):
          queue.put_nowait({"type": "error", "message": "Unknown subscription"})
          continue
        if handle in handles:
          handles.discard(handle)
          await change_feed.unsubscribe(handle)
        queue.put_nowait({"type": "unsubscribed", "handle": handle})

      else:
        queue.put_nowait({"type": "error", "message": f"Unknown message type: {msg_type}"})
  except WebSocketDisconnect:
    logger.info("realtime socket closed user=%s subscriptions=%s", user.id, len(handles))
  finally:
    for handle in handles:
      await change_feed.unsubscribe(handle)
    await stop_sender(sender, user.id)
