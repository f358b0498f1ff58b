from unittest.mock import AsyncMock

import pytest

from barberbot.models.message import Sender
from barberbot.repositories.message_repository import MessageRepository


@pytest.mark.asyncio
async def test_save_and_list_in_order(conversations, messages, user_id):
    conv = await conversations.create(user_id)

    hi = await messages.save(user_id, "Hi", Sender.USER, conv.id)
    hello = await messages.save(user_id, "Hello", Sender.BOT, conv.id)

    assert hi.sender == Sender.USER
    assert hi.conversation_id == conv.id
    assert hi.user_id == user_id

    listed = await messages.list_for_conversation(user_id, conv.id)
    assert [m.content for m in listed] == ["Hi", "Hello"]
    assert [m.id for m in listed] == [hi.id, hello.id]


@pytest.mark.asyncio
async def test_timestamps_are_non_decreasing(conversations, messages, user_id):
    conv = await conversations.create(user_id)
    for i in range(10):
        await messages.save(user_id, f"message {i}", Sender.USER if i % 2 else Sender.BOT, conv.id)

    listed = await messages.list_for_conversation(user_id, conv.id)
    stamps = [m.timestamp for m in listed]
    assert stamps == sorted(stamps)
    assert [m.content for m in listed] == [f"message {i}" for i in range(10)]


@pytest.mark.asyncio
async def test_save_bumps_last_message_at(conversations, messages, user_id):
    conv = await conversations.create(user_id)

    await messages.save(user_id, "Hi", Sender.USER, conv.id)

    after = await conversations.get(user_id, conv.id)
    assert after.last_message_at >= conv.last_message_at


@pytest.mark.asyncio
async def test_save_keeps_message_when_touch_fails(session_factory, conversations, user_id):
    conv = await conversations.create(user_id)
    conversations.touch_last_message_at = AsyncMock(return_value=False)
    repo = MessageRepository(session_factory, conversations)

    saved = await repo.save(user_id, "Hi", Sender.USER, conv.id)

    assert saved is not None
    assert [m.id for m in await repo.list_for_conversation(user_id, conv.id)] == [saved.id]
    conversations.touch_last_message_at.assert_awaited_once_with(user_id, conv.id)


@pytest.mark.asyncio
async def test_legacy_messages_without_conversation(conversations, messages, user_id):
    await messages.save(user_id, "Old one", Sender.USER)
    conv = await conversations.create(user_id)
    await messages.save(user_id, "New one", Sender.USER, conv.id)

    everything = await messages.list_for_user(user_id)
    assert [m.content for m in everything] == ["Old one", "New one"]
    assert everything[0].conversation_id is None


@pytest.mark.asyncio
async def test_cannot_save_into_someone_elses_conversation(conversations, messages, user_id, other_user_id):
    conv = await conversations.create(user_id)

    assert await messages.save(other_user_id, "Sneaky", Sender.USER, conv.id) is None
    assert await messages.list_for_conversation(user_id, conv.id) == []


@pytest.mark.asyncio
async def test_count_user_messages(conversations, messages, user_id):
    conv = await conversations.create(user_id)
    await messages.save(user_id, "Welcome", Sender.BOT, conv.id)
    assert await messages.count_user_messages(user_id, conv.id) == 0

    await messages.save(user_id, "Hi", Sender.USER, conv.id)
    assert await messages.count_user_messages(user_id, conv.id) == 1


@pytest.mark.asyncio
async def test_clear_for_user_spans_conversations(conversations, messages, user_id, other_user_id):
    first = await conversations.create(user_id)
    second = await conversations.create(user_id)
    await messages.save(user_id, "a", Sender.USER, first.id)
    await messages.save(user_id, "b", Sender.USER, second.id)
    await messages.save(user_id, "c", Sender.USER)
    await messages.save(other_user_id, "keep me", Sender.USER)

    assert await messages.clear_for_user(user_id) is True

    assert await messages.list_for_user(user_id) == []
    assert [m.content for m in await messages.list_for_user(other_user_id)] == ["keep me"]
    # conversations survive, only their messages go
    assert len(await conversations.list_for_user(user_id)) == 2


@pytest.mark.asyncio
async def test_delete_one_checks_ownership(messages, user_id, other_user_id):
    msg = await messages.save(user_id, "Hi", Sender.USER)

    assert await messages.delete_one(other_user_id, msg.id) is False
    assert await messages.delete_one(user_id, msg.id) is True
    assert await messages.delete_one(user_id, msg.id) is False
    assert await messages.list_for_user(user_id) == []


@pytest.mark.asyncio
async def test_failures_return_signals(broken_session_factory, conversations):
    repo = MessageRepository(broken_session_factory, conversations)

    assert await repo.save(1, "Hi", Sender.USER) is None
    assert await repo.list_for_user(1) == []
    assert await repo.list_for_conversation(1, "abc") == []
    assert await repo.count_user_messages(1, "abc") == -1
    assert await repo.clear_for_user(1) is False
    assert await repo.delete_one(1, "abc") is False


@pytest.mark.asyncio
async def test_save_rejects_unknown_sender(messages, user_id):
    assert await messages.save(user_id, "Hi", "barber") is None
    assert await messages.list_for_user(user_id) == []
