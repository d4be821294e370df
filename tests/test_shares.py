from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import event, func, select

from conftest import create_task, signup, signup_and_signin, user_id_for
from shared_todo.client.display import collaborator_label
from shared_todo.client.models import Collaborator
from shared_todo.db import SessionLocal, engine
from shared_todo.models import Notification, TaskShare


async def _share_count() -> int:
  async with SessionLocal() as db:
    return int((await db.execute(select(func.count()).select_from(TaskShare))).scalar_one())


@pytest.mark.anyio
async def test_cannot_share_with_self(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Mine")
  for email in ("alice@example.com", "ALICE@Example.com "):
    r = await client.post(f"/todos/{t['id']}/shares", json={"email": email})
    assert r.status_code == 422, r.text
    assert r.json()["detail"]["message"] == "You cannot share a task with yourself"
  assert await _share_count() == 0


@pytest.mark.anyio
async def test_share_with_bob_before_he_has_an_account(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Groceries")

  r = await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})
  assert r.status_code == 201, r.text

  collaborators = (await client.get(f"/todos/{t['id']}/shares")).json()
  assert len(collaborators) == 1
  c = Collaborator.from_api(collaborators[0])
  assert c.email == "bob@example.com"
  assert collaborator_label(c) == "bob@example.com"

  again = await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})
  assert again.status_code == 409, again.text
  assert again.json()["detail"] == {"code": "already_shared", "message": "This task is already shared with this user"}
  assert len((await client.get(f"/todos/{t['id']}/shares")).json()) == 1
  assert await _share_count() == 1


@pytest.mark.anyio
async def test_pending_share_resolves_when_collaborator_signs_up(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Groceries")
  await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})

  await signup_and_signin(other_client, "bob@example.com")

  collaborators = [Collaborator.from_api(d) for d in (await client.get(f"/todos/{t['id']}/shares")).json()]
  assert collaborator_label(collaborators[0]) == "bob@example.com (joined)"

  bob_lists = (await other_client.get("/todos")).json()
  assert len(bob_lists["incomplete"]) == 1
  shared = bob_lists["incomplete"][0]
  assert shared["kind"] == "shared"
  assert shared["isShared"] is True
  assert shared["ownerEmail"] == "alice@example.com"

  notes = (await other_client.get("/notifications")).json()
  assert [(n["type"], n["title"], n["message"]) for n in notes] == [
    ("task_shared", "Task Shared", 'alice@example.com shared "Groceries" with you'),
  ]


@pytest.mark.anyio
async def test_share_with_existing_user_notifies_immediately(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(other_client, "bob@example.com")
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Paint fence")

  r = await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})
  assert r.status_code == 201, r.text
  assert r.json()["joined"] is True

  notes = (await other_client.get("/notifications")).json()
  assert notes[0]["type"] == "task_shared"
  assert notes[0]["taskId"] == t["id"]


@pytest.mark.anyio
async def test_only_owner_manages_shares(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(other_client, "bob@example.com")
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Owned by alice")
  await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})

  r = await other_client.post(f"/todos/{t['id']}/shares", json={"email": "carol@example.com"})
  assert r.status_code == 403, r.text
  assert r.json()["detail"]["message"] == "You can only share your own tasks"

  r = await other_client.delete(f"/todos/{t['id']}/shares", params={"email": "bob@example.com"})
  assert r.status_code == 403, r.text

  r = await other_client.delete(f"/todos/{t['id']}")
  assert r.status_code == 403, r.text
  assert await _share_count() == 1


@pytest.mark.anyio
async def test_collaborator_can_edit_and_toggle(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(other_client, "bob@example.com")
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Shared chores")
  await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})

  r = await other_client.patch(f"/todos/{t['id']}", json={"title": "Shared chores (bob)"})
  assert r.status_code == 200, r.text
  assert r.json()["kind"] == "shared"
  r = await other_client.post(f"/todos/{t['id']}/toggle")
  assert r.status_code == 200, r.text

  lists = (await client.get("/todos")).json()
  assert [x["title"] for x in lists["complete"]] == ["Shared chores (bob)"]
  history = (await other_client.get(f"/todos/{t['id']}/history")).json()
  assert any(e["performedByEmail"] == "bob@example.com" and e["actionType"] == "completed" for e in history)


@pytest.mark.anyio
async def test_share_rejects_malformed_email(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "x")
  r = await client.post(f"/todos/{t['id']}/shares", json={"email": "not-an-email"})
  assert r.status_code == 422, r.text
  assert r.json()["detail"]["field"] == "email"
  assert await _share_count() == 0


@pytest.mark.anyio
async def test_share_unknown_task_is_not_found(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  r = await client.post("/todos/nope/shares", json={"email": "bob@example.com"})
  assert r.status_code == 404, r.text


@pytest.mark.anyio
async def test_remove_collaborator_notifies_before_deleting_share(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(other_client, "bob@example.com")
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Trip")
  await client.post(f"/todos/{t['id']}/shares", json={"email": "bob@example.com"})

  statements: list[str] = []

  def _capture(conn, cursor, statement, parameters, context, executemany) -> None:
    statements.append(statement.strip().upper())

  event.listen(engine.sync_engine, "before_cursor_execute", _capture)
  try:
    r = await client.delete(f"/todos/{t['id']}/shares", params={"email": "bob@example.com"})
  finally:
    event.remove(engine.sync_engine, "before_cursor_execute", _capture)
  assert r.status_code == 200, r.text

  insert_at = next(i for i, s in enumerate(statements) if s.startswith("INSERT INTO NOTIFICATIONS"))
  delete_at = next(i for i, s in enumerate(statements) if s.startswith("DELETE FROM TASK_SHARES"))
  assert insert_at < delete_at

  bob_id = await user_id_for("bob@example.com")
  async with SessionLocal() as db:
    res = await db.execute(select(Notification).where(Notification.user_id == bob_id, Notification.type == "collaborator_removed"))
    removed = res.scalar_one()
  assert removed.title == "Access Removed"
  assert removed.message == 'You have been removed from "Trip"'
  assert removed.task_id == t["id"]

  assert (await other_client.get("/todos")).json()["incomplete"] == []
  assert await _share_count() == 0


@pytest.mark.anyio
async def test_remove_pending_collaborator_sends_no_notification(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  t = await create_task(client, "Trip")
  await client.post(f"/todos/{t['id']}/shares", json={"email": "carol@example.com"})

  r = await client.delete(f"/todos/{t['id']}/shares", params={"email": "carol@example.com"})
  assert r.status_code == 200, r.text
  async with SessionLocal() as db:
    count = (await db.execute(select(func.count()).select_from(Notification))).scalar_one()
  assert count == 0
  assert await _share_count() == 0

  missing = await client.delete(f"/todos/{t['id']}/shares", params={"email": "carol@example.com"})
  assert missing.status_code == 404


@pytest.mark.anyio
async def test_signup_resolves_shares_from_several_owners(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  t1 = await create_task(client, "One")
  await client.post(f"/todos/{t1['id']}/shares", json={"email": "dave@example.com"})
  await signup_and_signin(other_client, "erin@example.com")
  t2 = await create_task(other_client, "Two")
  await other_client.post(f"/todos/{t2['id']}/shares", json={"email": "dave@example.com"})

  user = await signup(client, "dave@example.com")
  async with SessionLocal() as db:
    res = await db.execute(select(TaskShare).where(TaskShare.shared_with_email == "dave@example.com"))
    shares = res.scalars().all()
  assert {s.shared_with_user_id for s in shares} == {user["id"]}
