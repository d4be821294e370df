from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from shared_todo.client.models import Collaborator, Task

PRIORITY_LABELS = {"low": "Low", "medium": "Medium", "high": "High"}


def _zone(tz_name: str | None):
  return ZoneInfo(tz_name) if tz_name else timezone.utc


def format_due_date(due: datetime | None, *, tz_name: str | None = None, now: datetime | None = None) -> str:
  """``Today at 03:00 PM``, ``Tomorrow at 09:30 AM`` or ``Jan 05, 03:00 PM`` in the viewer's zone."""
  if due is None:
    return ""
  tz = _zone(tz_name)
  local = due.astimezone(tz)
  today = (now or datetime.now(timezone.utc)).astimezone(tz).date()
  clock = local.strftime("%I:%M %p")
  if local.date() == today:
    return f"Today at {clock}"
  if local.date() == today + timedelta(days=1):
    return f"Tomorrow at {clock}"
  return local.strftime("%b %d, %I:%M %p")


def is_overdue(task: Task, *, now: datetime | None = None) -> bool:
  if task.due_date is None or task.is_complete:
    return False
  return task.due_date < (now or datetime.now(timezone.utc))


def priority_label(priority: str | None) -> str:
  return PRIORITY_LABELS.get(priority or "medium", "Medium")


def collaborator_label(c: Collaborator) -> str:
  return f"{c.email} (joined)" if c.joined else c.email
