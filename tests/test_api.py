"""End-to-end tests of the REST surface over ASGITransport."""
import httpx
import pytest
from httpx import AsyncClient, ASGITransport

from barberbot.core.config import settings
from barberbot.db.change_feed import get_change_feed
from barberbot.db.database import get_engine, get_session_factory, init_db
from barberbot.main import app
from barberbot.services.bot_responder import FALLBACK_REPLY, get_bot_responder


def clear_singletons():
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    get_change_feed.cache_clear()


@pytest.fixture
async def client(tmp_path, monkeypatch, bot):
    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    clear_singletons()
    await init_db()
    app.dependency_overrides[get_bot_responder] = lambda: bot

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    await get_engine().dispose()
    clear_singletons()


async def login(client: AsyncClient, username: str) -> dict:
    res = await client.post("/api/auth/register", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": "secret123",
    })
    assert res.status_code == 201
    res = await client.post("/api/auth/login", json={"username": username, "password": "secret123"})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/health")
    assert res.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_register_rejects_duplicates(client):
    await login(client, "alice")
    res = await client.post("/api/auth/register", json={
        "username": "alice", "email": "other@example.com", "password": "secret123",
    })
    assert res.status_code == 400
    assert res.json()["detail"] == "Username already registered"


@pytest.mark.asyncio
async def test_login_with_wrong_password(client):
    await login(client, "alice")
    res = await client.post("/api/auth/login", json={"username": "alice", "password": "wrong-pass"})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_chat_requires_auth(client):
    res = await client.get("/api/chat/conversations")
    assert res.status_code in (401, 403)

    res = await client.get("/api/chat/conversations", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_full_chat_flow(client):
    headers = await login(client, "alice")

    active = (await client.get("/api/chat/conversations/active", headers=headers)).json()
    again = (await client.get("/api/chat/conversations/active", headers=headers)).json()
    assert active["id"] == again["id"]
    assert active["title"] == "New Chat"

    welcome = await client.post(f"/api/chat/conversations/{active['id']}/welcome", headers=headers)
    assert welcome.status_code == 200
    assert welcome.json()["sender"] == "bot"

    res = await client.post("/api/chat/send", headers=headers, json={
        "message": "Do you take walk-ins?", "conversationId": active["id"],
    })
    assert res.status_code == 200
    body = res.json()
    assert body["botError"] is False
    assert body["userMessage"]["content"] == "Do you take walk-ins?"
    assert body["botMessage"]["content"] == "Echo: Do you take walk-ins?"

    res = await client.get(f"/api/chat/conversations/{active['id']}/messages", headers=headers)
    assert [m["sender"] for m in res.json()] == ["bot", "user", "bot"]

    conv = (await client.get(f"/api/chat/conversations/{active['id']}", headers=headers)).json()
    assert conv["title"] == "Do you take walk-ins?"
    assert conv["last_message_at"] >= active["last_message_at"]


@pytest.mark.asyncio
async def test_send_when_bot_is_down(client, bot_factory):
    app.dependency_overrides[get_bot_responder] = lambda: bot_factory(lambda request: httpx.Response(500))
    headers = await login(client, "alice")

    res = await client.post("/api/chat/send", headers=headers, json={"message": "Hi"})

    assert res.status_code == 200
    body = res.json()
    assert body["botError"] is True
    assert body["botMessage"]["content"] == FALLBACK_REPLY
    messages = (await client.get(f"/api/chat/conversations/{body['conversationId']}/messages", headers=headers)).json()
    assert [m["content"] for m in messages] == ["Hi", FALLBACK_REPLY]


@pytest.mark.asyncio
async def test_conversations_are_private(client):
    alice = await login(client, "alice")
    bob = await login(client, "bob")
    conv = (await client.post("/api/chat/conversations", headers=alice, json={})).json()

    assert (await client.get(f"/api/chat/conversations/{conv['id']}", headers=bob)).status_code == 404
    assert (await client.get(f"/api/chat/conversations/{conv['id']}/messages", headers=bob)).status_code == 404
    assert (await client.delete(f"/api/chat/conversations/{conv['id']}", headers=bob)).status_code == 404
    res = await client.post("/api/chat/send", headers=bob, json={"message": "Hi", "conversationId": conv["id"]})
    assert res.status_code == 404
    assert (await client.get("/api/chat/conversations", headers=bob)).json() == []


@pytest.mark.asyncio
async def test_rename_and_delete_conversation(client):
    headers = await login(client, "alice")
    conv = (await client.post("/api/chat/conversations", headers=headers, json={"title": "Booking"})).json()
    await client.post("/api/chat/send", headers=headers, json={"message": "Hi", "conversationId": conv["id"]})

    res = await client.patch(f"/api/chat/conversations/{conv['id']}", headers=headers, json={"title": "Saturday cut"})
    assert res.status_code == 200
    assert res.json()["title"] == "Saturday cut"

    res = await client.patch(f"/api/chat/conversations/{conv['id']}", headers=headers, json={"title": "   "})
    assert res.status_code == 422
    assert (await client.get(f"/api/chat/conversations/{conv['id']}", headers=headers)).json()["title"] == "Saturday cut"

    res = await client.delete(f"/api/chat/conversations/{conv['id']}", headers=headers)
    assert res.status_code == 200
    assert (await client.get(f"/api/chat/conversations/{conv['id']}", headers=headers)).status_code == 404
    assert (await client.get("/api/chat/messages", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_message_history_endpoints(client):
    headers = await login(client, "alice")

    welcome = (await client.post("/api/chat/welcome", headers=headers)).json()
    assert welcome["conversation_id"] is None
    await client.post("/api/chat/send", headers=headers, json={"message": "Hi"})

    history = (await client.get("/api/chat/messages", headers=headers)).json()
    assert [m["content"] for m in history][1:] == ["Hi", "Echo: Hi"]

    res = await client.delete(f"/api/chat/messages/{welcome['id']}", headers=headers)
    assert res.status_code == 200
    assert (await client.delete(f"/api/chat/messages/{welcome['id']}", headers=headers)).status_code == 404

    assert (await client.delete("/api/chat/messages", headers=headers)).status_code == 200
    assert (await client.get("/api/chat/messages", headers=headers)).json() == []
