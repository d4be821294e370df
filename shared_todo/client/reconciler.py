"""
The signed-in user's task view.

Three things change the lists: full refreshes from the server, the user's
own optimistic edits (completion toggles and drag reordering), and change-feed
events. Every remote task or share event triggers a full refetch that is
merged into the store, rather than patching rows from the event payload;
shared-task display fields only exist on the joined list, so the payload alone
cannot be applied. Notifications are the exception: new ones are prepended as
they arrive.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

import httpx

from shared_todo.client.api import TodoApi
from shared_todo.client.forms import validate_email_field, validate_task_edit, validate_task_form
from shared_todo.client.models import AuditEntry, Collaborator, Notification, TaskItem
from shared_todo.client.realtime import Feed, RealtimeScope
from shared_todo.client.store import TaskStore
from shared_todo.config import settings
from shared_todo.errors import TodoError

logger = logging.getLogger(__name__)

_FAILURES = (TodoError, httpx.HTTPError)


def _message(exc: Exception) -> str:
  if isinstance(exc, TodoError):
    return exc.message
  return "Network error, please try again"


class TaskListView:
  def __init__(
    self,
    api: TodoApi,
    *,
    user_id: str,
    feed: Feed | None = None,
    tz_name: str | None = None,
  ) -> None:
    self.api = api
    self.user_id = user_id
    self.tz_name = tz_name or settings.default_timezone
    self.store = TaskStore()
    self.notifications: list[Notification] = []
    self.error: str | None = None
    self.field_errors: dict[str, str] = {}
    self._feed = feed
    self._scope: RealtimeScope | None = None
    self._order_lock = asyncio.Lock()
    self._order_generation = 0

  @property
  def incomplete(self) -> list[TaskItem]:
    return self.store.incomplete

  @property
  def complete(self) -> list[TaskItem]:
    return self.store.complete

  @property
  def unread_count(self) -> int:
    return sum(1 for n in self.notifications if not n.is_read)

  @property
  def realtime_active(self) -> bool:
    return self._scope is not None and self._scope.active

  # lifecycle

  async def open(self) -> TaskListView:
    await self.refresh()
    await self.load_notifications()
    if self._feed is not None and self._scope is None:
      scope = RealtimeScope(
        self._feed,
        user_id=self.user_id,
        on_task_change=self._on_remote_change,
        on_share_change=self._on_remote_change,
        on_notification=self._on_notification,
      )
      self._scope = scope
      await scope.open()
    return self

  async def close(self) -> None:
    scope, self._scope = self._scope, None
    if scope is not None:
      await scope.close()

  async def __aenter__(self) -> TaskListView:
    try:
      return await self.open()
    except BaseException:
      await self.close()
      raise

  async def __aexit__(self, *exc_info: Any) -> None:
    await self.close()

  # helpers

  def _fail(self, action: str, exc: Exception) -> None:
    self.error = _message(exc)
    logger.warning("%s failed: %s", action, self.error)

  def _clear_errors(self) -> None:
    self.error = None
    self.field_errors = {}

  async def refresh(self) -> None:
    incomplete, complete = await self.api.list_tasks()
    self.store.merge(incomplete, complete)

  async def _refresh_quietly(self) -> None:
    try:
      await self.refresh()
    except _FAILURES as exc:
      self._fail("refresh", exc)

  async def _mutate(self, action: str, call) -> tuple[bool, Any]:
    self._clear_errors()
    try:
      result = await call
    except _FAILURES as exc:
      self._fail(action, exc)
      return False, None
    await self._refresh_quietly()
    return True, result

  # realtime

  async def _on_remote_change(self, _event: Any) -> None:
    await self._refresh_quietly()

  def _on_notification(self, event: Any) -> None:
    n = Notification.from_record(event.record)
    if any(x.id == n.id for x in self.notifications):
      return
    self.notifications.insert(0, n)

  # tasks

  async def add(
    self,
    title: str,
    *,
    description: str | None = None,
    due_date: str | None = None,
    priority: str | None = None,
  ) -> bool:
    self._clear_errors()
    errors = validate_task_form(title, due_date, tz_name=self.tz_name)
    if errors:
      self.field_errors = errors
      return False
    call = self.api.add_todo(title, description=description, due_date=due_date, timezone=self.tz_name, priority=priority)
    ok, _ = await self._mutate("add", call)
    return ok

  async def edit(self, task_id: str, **fields: Any) -> bool:
    self._clear_errors()
    errors = validate_task_edit(fields, tz_name=self.tz_name)
    if errors:
      self.field_errors = errors
      return False
    if "due_date" in fields:
      fields.setdefault("timezone", self.tz_name)
    ok, _ = await self._mutate("edit", self.api.edit_todo(task_id, **fields))
    return ok

  async def delete(self, task_id: str) -> bool:
    ok, _ = await self._mutate("delete", self.api.delete_todo(task_id))
    return ok

  async def delete_completed(self) -> bool:
    ok, _ = await self._mutate("delete completed", self.api.delete_completed())
    return ok

  async def delete_all(self) -> bool:
    ok, _ = await self._mutate("delete all", self.api.delete_all())
    return ok

  async def toggle(self, task_id: str) -> bool:
    """
    Optimistically move the task to the other list, then persist. A failure
    moves it back to the list it came from, once; its old position is not
    restored. When a newer toggle of the same task is already in flight, that
    toggle owns the task and the failure leaves it where it is.
    """
    self._clear_errors()
    found = self.store.find(task_id)
    if found is None:
      self.error = "Task not found"
      return False
    desired = not found.complete
    self.store.set_complete(task_id, desired)
    token = self.store.pin(task_id, desired)
    try:
      await self.api.toggle(task_id, desired)
    except _FAILURES as exc:
      if self.store.unpin(task_id, token):
        self.store.set_complete(task_id, found.complete)
      self._fail("toggle", exc)
      return False
    self.store.unpin(task_id, token)
    await self._refresh_quietly()
    return True

  async def reorder(self, old_index: int, new_index: int) -> bool:
    """
    Move one incomplete task and persist the full order as ranks 0..N-1.

    Saves are serialized; a save that is still waiting when a newer drag
    completes is skipped, since the newer one carries the complete order.
    Nothing is refreshed afterwards: the order is private to this user.
    """
    self._clear_errors()
    size = len(self.store.incomplete)
    if old_index == new_index or not (0 <= old_index < size) or not (0 <= new_index < size):
      return False
    self.store.reorder(old_index, new_index)
    self._order_generation += 1
    generation = self._order_generation
    async with self._order_lock:
      if generation != self._order_generation:
        return True
      task_ids = self.store.incomplete_ids()
      try:
        result = await self.api.save_order(task_ids)
      except _FAILURES as exc:
        self._fail("reorder", exc)
        return False
    if result["failed"]:
      logger.warning("task order not saved for %s task(s): %s", len(result["failed"]), result["failed"])
      self.error = "Some tasks could not be reordered"
      return False
    return True

  async def history(self, task_id: str) -> list[AuditEntry]:
    self._clear_errors()
    try:
      return await self.api.history(task_id)
    except _FAILURES as exc:
      self._fail("history", exc)
      return []

  # sharing

  async def share(self, task_id: str, email: str) -> Collaborator | None:
    self._clear_errors()
    email_error = validate_email_field(email)
    if email_error:
      self.field_errors = {"email": email_error}
      return None
    _, collaborator = await self._mutate("share", self.api.share(task_id, email.strip()))
    return collaborator

  async def collaborators(self, task_id: str) -> list[Collaborator]:
    self._clear_errors()
    try:
      return await self.api.collaborators(task_id)
    except _FAILURES as exc:
      self._fail("collaborators", exc)
      return []

  async def remove_collaborator(self, task_id: str, email: str) -> bool:
    ok, _ = await self._mutate("remove collaborator", self.api.remove_collaborator(task_id, email))
    return ok

  # notifications

  async def load_notifications(self) -> None:
    try:
      self.notifications = await self.api.notifications()
    except _FAILURES as exc:
      self._fail("notifications", exc)

  async def mark_read(self, notification_id: str) -> bool:
    self._clear_errors()
    try:
      await self.api.mark_read(notification_id)
    except _FAILURES as exc:
      self._fail("mark read", exc)
      return False
    self.notifications = [_read(n) if n.id == notification_id else n for n in self.notifications]
    return True

  async def mark_all_read(self) -> bool:
    self._clear_errors()
    try:
      await self.api.mark_all_read()
    except _FAILURES as exc:
      self._fail("mark all read", exc)
      return False
    self.notifications = [_read(n) for n in self.notifications]
    return True


def _read(n: Notification) -> Notification:
  return dataclasses.replace(n, is_read=True)
