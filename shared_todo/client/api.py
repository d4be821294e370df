from __future__ import annotations

from typing import Any

import httpx

from shared_todo.client.models import AuditEntry, Collaborator, Notification, Task, TaskItem, task_from_api, task_item_from_api
from shared_todo.errors import TodoError, ValidationFailed, error_from_detail

_EDIT_FIELDS = {"title": "title", "description": "description", "due_date": "dueDate", "timezone": "timezone", "priority": "priority"}


def _error_for(r: httpx.Response) -> TodoError:
  try:
    payload = r.json()
  except ValueError:
    payload = (r.text or "")[:500]
  detail = payload.get("detail") if isinstance(payload, dict) else payload
  if isinstance(detail, list) and detail:
    # FastAPI request validation: report the first offending field.
    first = detail[0] if isinstance(detail[0], dict) else {}
    loc = first.get("loc") or []
    return ValidationFailed(str(first.get("msg") or "Invalid input"), field=str(loc[-1]) if loc else None)
  return error_from_detail(r.status_code, detail)


class TodoApi:
  """
  Thin async wrapper over the HTTP surface. Session state lives in the
  underlying client's cookie jar; non-2xx responses are raised as the
  matching ``TodoError`` subclass.
  """

  def __init__(self, client: httpx.AsyncClient) -> None:
    self._client = client

  @classmethod
  def connect(cls, base_url: str, *, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 30) -> TodoApi:
    headers = {"Accept": "application/json", "User-Agent": "shared-todo-client"}
    return cls(httpx.AsyncClient(base_url=base_url, transport=transport, headers=headers, timeout=timeout))

  @property
  def cookies(self) -> httpx.Cookies:
    return self._client.cookies

  def clear_cookies(self) -> None:
    self._client.cookies.clear()

  async def aclose(self) -> None:
    await self._client.aclose()

  async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
    r = await self._client.request(method, path, **kwargs)
    if r.status_code >= 400:
      raise _error_for(r)
    if r.status_code == 204 or not r.content:
      return None
    return r.json()

  # auth

  async def sign_up(self, email: str, password: str) -> dict[str, Any]:
    return await self._request_json("POST", "/auth/signup", json={"email": email, "password": password})

  async def sign_in(self, email: str, password: str) -> dict[str, Any]:
    return await self._request_json("POST", "/auth/signin", json={"email": email, "password": password})

  async def sign_out(self) -> None:
    await self._request_json("POST", "/auth/signout")

  async def get_current_user(self) -> dict[str, Any]:
    return await self._request_json("GET", "/auth/me")

  # tasks

  async def list_tasks(self) -> tuple[list[TaskItem], list[TaskItem]]:
    data = await self._request_json("GET", "/todos")
    return (
      [task_item_from_api(d) for d in data.get("incomplete", [])],
      [task_item_from_api(d) for d in data.get("complete", [])],
    )

  async def add_todo(
    self,
    title: str,
    *,
    description: str | None = None,
    due_date: str | None = None,
    timezone: str | None = None,
    priority: str | None = None,
  ) -> Task:
    body = {"title": title, "description": description, "dueDate": due_date, "timezone": timezone, "priority": priority}
    return task_from_api(await self._request_json("POST", "/todos", json=body))

  async def edit_todo(self, task_id: str, **fields: Any) -> Task:
    # Only the fields passed are sent, so omitted ones are left untouched.
    unknown = set(fields) - set(_EDIT_FIELDS)
    if unknown:
      raise TypeError(f"unknown task fields: {sorted(unknown)}")
    body = {_EDIT_FIELDS[k]: v for k, v in fields.items()}
    return task_from_api(await self._request_json("PATCH", f"/todos/{task_id}", json=body))

  async def toggle(self, task_id: str, is_complete: bool | None = None) -> Task:
    return task_from_api(await self._request_json("POST", f"/todos/{task_id}/toggle", json={"isComplete": is_complete}))

  async def delete_todo(self, task_id: str) -> None:
    await self._request_json("DELETE", f"/todos/{task_id}")

  async def delete_completed(self) -> int:
    data = await self._request_json("DELETE", "/todos", params={"scope": "completed"})
    return int(data.get("deleted", 0))

  async def delete_all(self) -> int:
    data = await self._request_json("DELETE", "/todos", params={"scope": "all"})
    return int(data.get("deleted", 0))

  async def save_order(self, task_ids: list[str]) -> dict[str, list[str]]:
    data = await self._request_json("PUT", "/todos/order", json={"taskIds": list(task_ids)})
    return {"saved": list(data.get("saved", [])), "failed": list(data.get("failed", []))}

  async def history(self, task_id: str) -> list[AuditEntry]:
    return [AuditEntry.from_api(d) for d in await self._request_json("GET", f"/todos/{task_id}/history")]

  # sharing

  async def share(self, task_id: str, email: str) -> Collaborator:
    return Collaborator.from_api(await self._request_json("POST", f"/todos/{task_id}/shares", json={"email": email}))

  async def collaborators(self, task_id: str) -> list[Collaborator]:
    return [Collaborator.from_api(d) for d in await self._request_json("GET", f"/todos/{task_id}/shares")]

  async def remove_collaborator(self, task_id: str, email: str) -> None:
    await self._request_json("DELETE", f"/todos/{task_id}/shares", params={"email": email})

  # notifications

  async def notifications(self, *, limit: int | None = None) -> list[Notification]:
    params = {"limit": limit} if limit else None
    return [Notification.from_api(d) for d in await self._request_json("GET", "/notifications", params=params)]

  async def mark_read(self, notification_id: str) -> None:
    await self._request_json("POST", f"/notifications/{notification_id}/read")

  async def mark_all_read(self) -> int:
    data = await self._request_json("POST", "/notifications/read-all")
    return int(data.get("updated", 0))
