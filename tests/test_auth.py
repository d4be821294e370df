from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import PASSWORD, create_task, make_client, signin, signup, signup_and_signin
from shared_todo.actions.auth import sign_up
from shared_todo.config import settings
from shared_todo.db import SessionLocal


@pytest.mark.anyio
async def test_signup_validation_and_duplicates(client: AsyncClient) -> None:
  r = await client.post("/auth/signup", json={"email": "nope", "password": PASSWORD})
  assert r.status_code == 422, r.text
  assert r.json()["detail"]["field"] == "email"

  r = await client.post("/auth/signup", json={"email": "alice@example.com", "password": "short"})
  assert r.status_code == 422, r.text
  assert r.json()["detail"]["message"] == "Password must be at least 8 characters"

  user = await signup(client, "Alice@Example.com")
  assert user["email"] == "alice@example.com"
  assert user["emailVerified"] is True

  r = await client.post("/auth/signup", json={"email": "alice@example.com", "password": PASSWORD})
  assert r.status_code == 409, r.text
  assert r.json()["detail"]["message"] == "User already registered"


@pytest.mark.anyio
async def test_signin_sets_cookie_and_me_works(client: AsyncClient) -> None:
  await signup(client, "alice@example.com")
  body = await signin(client, "ALICE@example.com")
  assert body["email"] == "alice@example.com"
  me = await client.get("/auth/me")
  assert me.status_code == 200, me.text
  assert me.json()["id"] == body["id"]


@pytest.mark.anyio
async def test_wrong_password_is_invalid_credentials(client: AsyncClient) -> None:
  await signup(client, "alice@example.com")
  r = await client.post("/auth/signin", json={"email": "alice@example.com", "password": "wrong-password"})
  assert r.status_code == 401, r.text
  assert r.json()["detail"]["code"] == "invalid_credentials"
  assert "st_session" not in r.headers.get("set-cookie", "")


@pytest.mark.anyio
async def test_signout_ends_the_session(client: AsyncClient) -> None:
  await signup_and_signin(client, "alice@example.com")
  session_id = client.cookies.get("st_session")
  assert session_id

  r = await client.post("/auth/signout")
  assert r.status_code == 200, r.text
  assert (await client.get("/auth/me")).status_code == 401

  async with make_client() as replay:
    replay.cookies.set("st_session", session_id)
    assert (await replay.get("/auth/me")).status_code == 401


@pytest.mark.anyio
async def test_form_signin_redirects_home(client: AsyncClient) -> None:
  await signup(client, "alice@example.com")

  r = await client.post("/signin", data={"email": "alice@example.com", "password": PASSWORD})
  assert r.status_code == 303, r.text
  assert r.headers["location"] == "/"
  assert "st_session=" in r.headers.get("set-cookie", "")

  await create_task(client, "Buy milk")
  home = await client.get("/")
  assert home.status_code == 200, home.text
  assert [t["title"] for t in home.json()["incomplete"]] == ["Buy milk"]

  page = await client.get("/signin")
  assert page.status_code == 303
  assert page.headers["location"] == "/"


@pytest.mark.anyio
async def test_home_redirects_to_signin_when_signed_out(client: AsyncClient) -> None:
  r = await client.get("/")
  assert r.status_code == 303
  assert r.headers["location"] == "/signin"


@pytest.mark.anyio
async def test_form_signin_failure_carries_reason_code(client: AsyncClient) -> None:
  await signup(client, "alice@example.com")
  r = await client.post("/signin", data={"email": "alice@example.com", "password": "nope-nope"})
  assert r.status_code == 303
  assert r.headers["location"] == "/signin?error=invalid_credentials"

  page = await client.get("/signin", params={"error": "invalid_credentials"})
  assert page.status_code == 200, page.text
  assert page.json() == {
    "page": "signin",
    "error": "invalid_credentials",
    "message": "Invalid email or password. Please check your credentials and try again.",
  }

  plain = await client.get("/signin")
  assert plain.json() == {"page": "signin", "error": None, "message": None}


@pytest.mark.anyio
async def test_form_signin_passes_through_raw_messages(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "rate_limit_signin_ip_per_minute", 1)
  await signup(client, "alice@example.com")
  await client.post("/signin", data={"email": "alice@example.com", "password": "nope-nope"})

  r = await client.post("/signin", data={"email": "alice@example.com", "password": PASSWORD})
  assert r.status_code == 303
  location = r.headers["location"]
  assert location.startswith("/signin?error=Too%20many")

  page = await client.get(location)
  assert page.json()["message"].startswith("Too many sign-in attempts, retry in ")


@pytest.mark.anyio
async def test_json_signin_rate_limit(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "rate_limit_signin_email_per_minute", 2)
  await signup(client, "alice@example.com")
  for _ in range(2):
    r = await client.post("/auth/signin", json={"email": "alice@example.com", "password": "nope-nope"})
    assert r.status_code == 401
  r = await client.post("/auth/signin", json={"email": "alice@example.com", "password": PASSWORD})
  assert r.status_code == 429, r.text
  assert r.json()["detail"]["code"] == "rate_limited"
  assert r.headers.get("retry-after") == "60"


@pytest.mark.anyio
async def test_email_verification_flow(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "require_email_verification", True)

  r = await client.post("/auth/signup", json={"email": "carol@example.com", "password": PASSWORD})
  assert r.status_code == 201, r.text
  assert r.json()["verificationRequired"] is True

  async with SessionLocal() as db:
    result = await sign_up(db, email="dave@example.com", password=PASSWORD)
  assert result.verification_token

  r = await client.post("/auth/signin", json={"email": "dave@example.com", "password": PASSWORD})
  assert r.status_code == 403, r.text
  assert r.json()["detail"]["code"] == "email_not_verified"

  r = await client.post("/signin", data={"email": "dave@example.com", "password": PASSWORD})
  assert r.headers["location"] == "/signin?error=email_not_verified"

  v = await client.get("/auth/verify", params={"token": result.verification_token})
  assert v.status_code == 200, v.text
  assert v.json()["emailVerified"] is True
  again = await client.get("/auth/verify", params={"token": result.verification_token})
  assert again.status_code == 404

  await signin(client, "dave@example.com")


@pytest.mark.anyio
async def test_health_and_version(client: AsyncClient) -> None:
  assert (await client.get("/health")).json() == {"ok": True}
  v = (await client.get("/version")).json()
  assert v["version"] == settings.app_version
  assert (await client.get("/health")).headers["x-content-type-options"] == "nosniff"
