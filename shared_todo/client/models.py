"""Client-side records decoded from API payloads.

A task arrives either as the caller's own (``Owned``) or as one shared with
them (``SharedWithMe``, which also carries the owner's email for display).
The variant is fixed once, when the payload is decoded.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union


def parse_ts(value: Any) -> datetime | None:
  if value is None or value == "":
    return None
  if isinstance(value, datetime):
    return value
  return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Task:
  id: str
  user_id: str
  title: str
  description: str | None
  due_date: datetime | None
  priority: str
  is_complete: bool
  created_at: datetime


@dataclass(frozen=True)
class Owned:
  task: Task
  kind = "owned"

  @property
  def id(self) -> str:
    return self.task.id


@dataclass(frozen=True)
class SharedWithMe:
  task: Task
  owner_email: str | None = None
  kind = "shared"

  @property
  def id(self) -> str:
    return self.task.id


TaskItem = Union[Owned, SharedWithMe]


def task_from_api(d: dict[str, Any]) -> Task:
  return Task(
    id=str(d["id"]),
    user_id=str(d.get("userId") or ""),
    title=str(d.get("title") or ""),
    description=d.get("description"),
    due_date=parse_ts(d.get("dueDate")),
    priority=str(d.get("priority") or "medium"),
    is_complete=bool(d.get("isComplete")),
    created_at=parse_ts(d.get("createdAt")),
  )


def task_item_from_api(d: dict[str, Any]) -> TaskItem:
  t = task_from_api(d)
  if d.get("kind") == "shared":
    return SharedWithMe(task=t, owner_email=d.get("ownerEmail"))
  return Owned(task=t)


def with_completion(item: TaskItem, is_complete: bool) -> TaskItem:
  return dataclasses.replace(item, task=dataclasses.replace(item.task, is_complete=is_complete))


@dataclass(frozen=True)
class Notification:
  id: str
  type: str
  title: str
  message: str
  task_id: str | None
  is_read: bool
  created_at: datetime

  @classmethod
  def from_api(cls, d: dict[str, Any]) -> Notification:
    return cls(
      id=str(d["id"]),
      type=str(d.get("type") or ""),
      title=str(d.get("title") or ""),
      message=str(d.get("message") or ""),
      task_id=d.get("taskId"),
      is_read=bool(d.get("isRead")),
      created_at=parse_ts(d.get("createdAt")),
    )

  @classmethod
  def from_record(cls, r: dict[str, Any]) -> Notification:
    # Change-feed rows use column names rather than API field names.
    return cls(
      id=str(r["id"]),
      type=str(r.get("type") or ""),
      title=str(r.get("title") or ""),
      message=str(r.get("message") or ""),
      task_id=r.get("task_id"),
      is_read=bool(r.get("is_read")),
      created_at=parse_ts(r.get("created_at")),
    )


@dataclass(frozen=True)
class AuditEntry:
  id: str
  task_id: str
  action_type: str
  message: str
  performed_by_user_id: str
  performed_by_email: str | None
  created_at: datetime

  @classmethod
  def from_api(cls, d: dict[str, Any]) -> AuditEntry:
    return cls(
      id=str(d["id"]),
      task_id=str(d.get("taskId") or ""),
      action_type=str(d.get("actionType") or ""),
      message=str(d.get("message") or ""),
      performed_by_user_id=str(d.get("performedByUserId") or ""),
      performed_by_email=d.get("performedByEmail"),
      created_at=parse_ts(d.get("createdAt")),
    )


@dataclass(frozen=True)
class Collaborator:
  id: str
  task_id: str
  email: str
  user_id: str | None
  joined: bool
  created_at: datetime

  @classmethod
  def from_api(cls, d: dict[str, Any]) -> Collaborator:
    return cls(
      id=str(d["id"]),
      task_id=str(d.get("taskId") or ""),
      email=str(d.get("email") or ""),
      user_id=d.get("userId"),
      joined=bool(d.get("joined")),
      created_at=parse_ts(d.get("createdAt")),
    )
