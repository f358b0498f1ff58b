"""
Shared fixtures: a throwaway SQLite database per test, repositories wired to
it, and a bot responder backed by httpx.MockTransport.
"""
import json

import httpx
import pytest

from barberbot.db.change_feed import ChangeFeed
from barberbot.db.database import build_engine, build_session_factory, init_db
from barberbot.models.user import User
from barberbot.repositories.conversation_repository import ConversationRepository
from barberbot.repositories.message_repository import MessageRepository
from barberbot.services.bot_responder import BotResponder
from barberbot.services.chat_service import ChatService


def make_bot(handler) -> BotResponder:
    """BotResponder whose webhook is answered by `handler(request) -> httpx.Response`."""
    return BotResponder(
        webhook_url="http://bot.test/webhook",
        timeout=5.0,
        source="chat-interface",
        transport=httpx.MockTransport(handler),
    )


def echo_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"output": f"Echo: {body['message']}"})


async def add_user(session_factory, username: str) -> int:
    async with session_factory() as db:
        user = User(username=username, email=f"{username}@example.com", hashed_password="not-a-real-hash")
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user.id


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def user_id(session_factory):
    return await add_user(session_factory, "alice")


@pytest.fixture
async def other_user_id(session_factory):
    return await add_user(session_factory, "bob")


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def conversations(session_factory, feed):
    return ConversationRepository(session_factory, feed)


@pytest.fixture
def messages(session_factory, conversations, feed):
    return MessageRepository(session_factory, conversations, feed)


@pytest.fixture
def bot():
    return make_bot(echo_handler)


@pytest.fixture
def chat(conversations, messages, bot):
    return ChatService(conversations, messages, bot)


@pytest.fixture
def broken_session_factory():
    """Session factory for a store that cannot be reached."""
    from sqlalchemy.exc import OperationalError

    def factory():
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    return factory


@pytest.fixture
def bot_factory():
    return make_bot
