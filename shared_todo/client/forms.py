"""Validation run before any network call; messages are shown next to the field."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from email_validator import EmailNotValidError, validate_email

from shared_todo.config import settings

_DUE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}(:\d{2})?)?$")

MIN_PASSWORD_LENGTH = 8


def _today(tz_name: str | None, now: datetime | None) -> date:
  try:
    tz = ZoneInfo(tz_name or settings.default_timezone or "UTC")
  except (ZoneInfoNotFoundError, ValueError):
    tz = timezone.utc
  return (now or datetime.now(timezone.utc)).astimezone(tz).date()


def validate_title(title: str | None) -> str | None:
  if not (title or "").strip():
    return "Task title is required"
  return None


def validate_due_date(value: str | None, *, tz_name: str | None = None, now: datetime | None = None) -> str | None:
  s = (value or "").strip()
  if not s:
    return None
  if not _DUE_RE.match(s):
    return "Year must be a valid 4-digit number (YYYY-MM-DD format)"
  try:
    parsed = datetime.fromisoformat(s)
  except ValueError:
    return "Please select a valid date"
  if parsed.date() < _today(tz_name, now):
    return "Due date cannot be in the past"
  return None


def _due_error(value: str | None, *, tz_name: str | None, now: datetime | None, check_past: bool) -> str | None:
  error = validate_due_date(value, tz_name=tz_name, now=now)
  if error == "Due date cannot be in the past" and not check_past:
    return None
  return error


def validate_email_field(email: str | None) -> str | None:
  raw = (email or "").strip()
  if not raw:
    return "Email is required"
  try:
    validate_email(raw, check_deliverability=False)
  except EmailNotValidError:
    return "Please enter a valid email address"
  return None


def validate_password(password: str | None) -> str | None:
  if not password:
    return "Password is required"
  if len(password) < MIN_PASSWORD_LENGTH:
    return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
  return None


def _collect(**checks: str | None) -> dict[str, str]:
  return {name: msg for name, msg in checks.items() if msg}


def validate_task_form(
  title: str | None,
  due_date: str | None = None,
  *,
  tz_name: str | None = None,
  now: datetime | None = None,
  check_past: bool = True,
) -> dict[str, str]:
  due_error = _due_error(due_date, tz_name=tz_name, now=now, check_past=check_past)
  return _collect(title=validate_title(title), dueDate=due_error)


def validate_task_edit(fields: dict, *, tz_name: str | None = None, now: datetime | None = None) -> dict[str, str]:
  """Check only the fields being changed; a past due date is left to the server, which knows the stored one."""
  checks: dict[str, str | None] = {}
  if "title" in fields:
    checks["title"] = validate_title(fields["title"])
  if "due_date" in fields:
    checks["dueDate"] = _due_error(fields["due_date"], tz_name=tz_name, now=now, check_past=False)
  return _collect(**checks)


def validate_signup_form(email: str | None, password: str | None) -> dict[str, str]:
  return _collect(email=validate_email_field(email), password=validate_password(password))


def validate_signin_form(email: str | None, password: str | None) -> dict[str, str]:
  return _collect(email=validate_email_field(email), password="Password is required" if not password else None)
