from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import create_task, signup_and_signin, user_id_for
from shared_todo.db import SessionLocal
from shared_todo.models import UserTaskOrder
from shared_todo.realtime import change_feed


async def _ranks(user_id: str) -> dict[str, int]:
  async with SessionLocal() as db:
    res = await db.execute(select(UserTaskOrder.task_id, UserTaskOrder.sort_order).where(UserTaskOrder.user_id == user_id))
    return {row.task_id: row.sort_order for row in res.all()}


@pytest.mark.anyio
async def test_reorder_persists_consecutive_ranks(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  ids = [(await create_task(client, title))["id"] for title in ("a", "b", "c", "d")]
  visual = [ids[1], ids[3], ids[0], ids[2]]

  r = await client.put("/todos/order", json={"taskIds": visual})
  assert r.status_code == 200, r.text
  assert r.json() == {"saved": visual, "failed": []}

  assert await _ranks(await user_id_for("alice@example.com")) == {tid: i for i, tid in enumerate(visual)}
  lists = (await client.get("/todos")).json()
  assert [t["id"] for t in lists["incomplete"]] == visual


@pytest.mark.anyio
async def test_reorder_again_updates_existing_rows(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  ids = [(await create_task(client, title))["id"] for title in ("a", "b", "c")]
  await client.put("/todos/order", json={"taskIds": ids})
  await client.put("/todos/order", json={"taskIds": list(reversed(ids))})

  user_id = await user_id_for("alice@example.com")
  async with SessionLocal() as db:
    res = await db.execute(select(UserTaskOrder).where(UserTaskOrder.user_id == user_id))
    rows = res.scalars().all()
  assert len(rows) == 3
  assert {r.task_id: r.sort_order for r in rows} == {ids[2]: 0, ids[1]: 1, ids[0]: 2}


@pytest.mark.anyio
async def test_unranked_tasks_follow_ranked_ones(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  a = (await create_task(client, "a"))["id"]
  b = (await create_task(client, "b"))["id"]
  await client.put("/todos/order", json={"taskIds": [a, b]})
  c = (await create_task(client, "c"))["id"]
  d = (await create_task(client, "d"))["id"]

  lists = (await client.get("/todos")).json()
  assert [t["id"] for t in lists["incomplete"]] == [a, b, d, c]


@pytest.mark.anyio
async def test_order_is_private_and_not_broadcast(client: AsyncClient, other_client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  await signup_and_signin(other_client, "bob@example.com")
  a = (await create_task(client, "a"))["id"]
  b = (await create_task(client, "b"))["id"]
  await client.post(f"/todos/{a}/shares", json={"email": "bob@example.com"})
  await client.post(f"/todos/{b}/shares", json={"email": "bob@example.com"})

  alice_id = await user_id_for("alice@example.com")
  bob_id = await user_id_for("bob@example.com")
  seen = []
  for uid in (alice_id, bob_id):
    for table in ("tasks", "task_shares", "notifications"):
      await change_feed.subscribe(table, "*", seen.append, user_id=uid)

  r = await client.put("/todos/order", json={"taskIds": [a, b]})
  assert r.status_code == 200, r.text
  assert seen == []

  assert await _ranks(bob_id) == {}
  bob_view = (await other_client.get("/todos")).json()
  assert [t["id"] for t in bob_view["incomplete"]] == [b, a]


@pytest.mark.anyio
async def test_reorder_rejects_duplicate_ids(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  a = (await create_task(client, "a"))["id"]
  r = await client.put("/todos/order", json={"taskIds": [a, a]})
  assert r.status_code == 422, r.text
  assert r.json()["detail"]["field"] == "taskIds"
