"""Error taxonomy shared by the server actions and the HTTP client.

Every error carries a stable ``code`` so that a failure raised by an action
on the server can be rebuilt as the same class on the client side.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote, unquote


class TodoError(Exception):
  code = "error"
  status_code = 400
  default_message = "Request failed"

  def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
    self.message = message or self.default_message
    self.field = field
    super().__init__(self.message)

  def to_detail(self) -> dict[str, Any]:
    detail: dict[str, Any] = {"code": self.code, "message": self.message}
    if self.field:
      detail["field"] = self.field
    return detail


class Unauthenticated(TodoError):
  code = "unauthenticated"
  status_code = 401
  default_message = "Not authenticated"


class InvalidCredentials(Unauthenticated):
  code = "invalid_credentials"
  default_message = "Invalid login credentials"


class Forbidden(TodoError):
  code = "forbidden"
  status_code = 403
  default_message = "Not allowed"


class EmailNotVerified(Forbidden):
  code = "email_not_verified"
  default_message = "Email not confirmed"


class ValidationFailed(TodoError):
  code = "validation_failed"
  status_code = 422
  default_message = "Invalid input"


class Conflict(TodoError):
  code = "conflict"
  status_code = 409
  default_message = "Conflict"


class AlreadyShared(Conflict):
  code = "already_shared"
  default_message = "This task is already shared with this user"


class NotFound(TodoError):
  code = "not_found"
  status_code = 404
  default_message = "Not found"


class TaskNotFound(NotFound):
  code = "task_not_found"
  default_message = "Task not found"


class RateLimited(TodoError):
  code = "rate_limited"
  status_code = 429
  default_message = "Too many requests"


_BY_CODE: dict[str, type[TodoError]] = {
  cls.code: cls
  for cls in (
    TodoError,
    Unauthenticated,
    InvalidCredentials,
    Forbidden,
    EmailNotVerified,
    ValidationFailed,
    Conflict,
    AlreadyShared,
    NotFound,
    TaskNotFound,
    RateLimited,
  )
}


def error_from_detail(status_code: int, detail: Any) -> TodoError:
  if isinstance(detail, dict) and detail.get("code") in _BY_CODE:
    cls = _BY_CODE[detail["code"]]
    return cls(detail.get("message"), field=detail.get("field"))
  message = detail if isinstance(detail, str) and detail else None
  for cls in (Unauthenticated, Forbidden, NotFound, Conflict, ValidationFailed, RateLimited):
    if cls.status_code == status_code:
      return cls(message)
  return TodoError(message or f"Request failed ({status_code})")


SIGNIN_MESSAGES = {
  "invalid_credentials": "Invalid email or password. Please check your credentials and try again.",
  "email_not_verified": "Your email address has not been verified. Please check your inbox for a verification link.",
}


def signin_error_code(exc: TodoError) -> str:
  """Reason code carried back to the sign-in page; unknown failures travel as their URL-encoded message."""
  if isinstance(exc, InvalidCredentials):
    return "invalid_credentials"
  if isinstance(exc, EmailNotVerified):
    return "email_not_verified"
  return quote(exc.message, safe="")


def signin_error_message(code: str | None) -> str | None:
  if not code:
    return None
  return SIGNIN_MESSAGES.get(code) or unquote(code)
