from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Priority = Literal["low", "medium", "high"]


class SignUpIn(BaseModel):
  email: str = Field(max_length=320)
  password: str = Field(max_length=200)


class SignInIn(BaseModel):
  email: str
  password: str


class UserOut(BaseModel):
  id: str
  email: str
  emailVerified: bool = True


class SignUpOut(BaseModel):
  user: UserOut
  verificationRequired: bool = False


class TaskCreateIn(BaseModel):
  title: str = Field(max_length=500)
  description: str | None = Field(default=None, max_length=10_000)
  dueDate: str | None = None
  timezone: str | None = Field(default=None, max_length=64)
  priority: Priority | None = None


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, max_length=500)
  description: str | None = Field(default=None, max_length=10_000)
  dueDate: str | None = None
  timezone: str | None = Field(default=None, max_length=64)
  priority: Priority | None = None


class TaskToggleIn(BaseModel):
  isComplete: bool | None = None


class TaskOut(BaseModel):
  kind: Literal["owned", "shared"]
  id: str
  userId: str
  title: str
  description: str | None = None
  dueDate: datetime | None = None
  priority: Priority = "medium"
  isComplete: bool = False
  createdAt: datetime
  isShared: bool = False
  ownerEmail: str | None = None


class TaskListOut(BaseModel):
  incomplete: list[TaskOut]
  complete: list[TaskOut]


class TaskOrderIn(BaseModel):
  taskIds: list[str] = Field(max_length=5000)


class TaskOrderOut(BaseModel):
  saved: list[str]
  failed: list[str]


class DeleteOut(BaseModel):
  ok: bool = True
  deleted: int = 0


class ShareIn(BaseModel):
  email: str = Field(max_length=320)


class CollaboratorOut(BaseModel):
  id: str
  taskId: str
  email: str
  userId: str | None = None
  joined: bool = False
  createdAt: datetime


class NotificationOut(BaseModel):
  id: str
  type: str
  title: str
  message: str
  taskId: str | None = None
  isRead: bool = False
  createdAt: datetime


class AuditOut(BaseModel):
  id: str
  taskId: str
  actionType: str
  message: str
  performedByUserId: str
  performedByEmail: str | None = None
  createdAt: datetime


class SignInPageOut(BaseModel):
  page: Literal["signin"] = "signin"
  error: str | None = None
  message: str | None = None
