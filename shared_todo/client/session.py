from __future__ import annotations

import logging
from typing import Any

import httpx

from shared_todo.client.api import TodoApi
from shared_todo.client.forms import validate_signin_form, validate_signup_form
from shared_todo.client.realtime import Feed
from shared_todo.client.reconciler import TaskListView
from shared_todo.errors import TodoError, signin_error_code, signin_error_message

logger = logging.getLogger(__name__)

# Everything a signed-in client keeps locally, in the order sign-out clears it.
PURGED_STATE = ("view", "notifications", "user", "cookies", "signin_error")


class ClientSession:
  """
  One user's client-side session: the cookie jar (inside ``api``), the
  current user, the open task view and the last sign-in error.
  """

  def __init__(self, api: TodoApi, *, feed: Feed | None = None, tz_name: str | None = None) -> None:
    self.api = api
    self.feed = feed
    self.tz_name = tz_name
    self.user: dict[str, Any] | None = None
    self.view: TaskListView | None = None
    self.signin_error: str | None = None
    self.field_errors: dict[str, str] = {}

  @property
  def signed_in(self) -> bool:
    return self.user is not None

  async def sign_up(self, email: str, password: str) -> dict[str, Any] | None:
    self.field_errors = validate_signup_form(email, password)
    if self.field_errors:
      return None
    try:
      return await self.api.sign_up(email.strip(), password)
    except (TodoError, httpx.HTTPError) as exc:
      self.signin_error = exc.message if isinstance(exc, TodoError) else "Network error, please try again"
      logger.warning("sign up failed: %s", self.signin_error)
      return None

  async def sign_in(self, email: str, password: str) -> bool:
    self.field_errors = validate_signin_form(email, password)
    if self.field_errors:
      return False
    try:
      body = await self.api.sign_in(email.strip(), password)
    except TodoError as exc:
      # Same reason codes and wording the sign-in page shows.
      self.signin_error = signin_error_message(signin_error_code(exc))
      logger.warning("sign in failed: %s", exc.code)
      return False
    except httpx.HTTPError as exc:
      self.signin_error = "Network error, please try again"
      logger.warning("sign in failed: %s", exc)
      return False
    self.user = body
    self.signin_error = None
    return True

  async def open_view(self) -> TaskListView:
    if self.user is None:
      raise RuntimeError("sign in before opening the task view")
    if self.view is None:
      view = TaskListView(self.api, user_id=self.user["id"], feed=self.feed, tz_name=self.tz_name)
      try:
        await view.open()
      except BaseException:
        await view.close()
        raise
      self.view = view
    return self.view

  async def sign_out(self) -> list[str]:
    try:
      await self.api.sign_out()
    except (TodoError, httpx.HTTPError) as exc:
      logger.warning("server sign out failed, purging local state anyway: %s", exc)
    return await self.purge()

  async def purge(self) -> list[str]:
    """Drop every piece of local state listed in ``PURGED_STATE``."""
    view, self.view = self.view, None
    if view is not None:
      view.notifications.clear()
      view.store.clear()
      await view.close()
    self.user = None
    self.api.clear_cookies()
    self.signin_error = None
    self.field_errors = {}
    logger.info("client session purged: %s", ", ".join(PURGED_STATE))
    return list(PURGED_STATE)
