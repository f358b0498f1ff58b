"""
Realtime sync - keeps client views in step with the chat tables.

Whenever the change feed reports an insert, update or delete on a user's rows,
the whole collection is fetched again and handed to the callback. No patches
are applied, so the callback always sees a complete, ordered list.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Sequence, Union

from barberbot.db.change_feed import ChangeEvent, ChangeFeed, FeedSubscription
from barberbot.models.conversation import Conversation
from barberbot.models.message import Message
from barberbot.repositories.conversation_repository import ConversationRepository
from barberbot.repositories.message_repository import MessageRepository
from barberbot.schemas.chat import ChatMessage, ConversationRead

logger = logging.getLogger(__name__)

Callback = Callable[[List[Any]], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned to subscribers; call unsubscribe() when done."""

    def __init__(self, feed_subscription: FeedSubscription):
        self._feed_subscription = feed_subscription

    @property
    def active(self) -> bool:
        return not self._feed_subscription.closed

    async def wait_idle(self) -> None:
        """Wait until every pending change has been delivered."""
        await self._feed_subscription.wait_idle()

    def unsubscribe(self) -> None:
        self._feed_subscription.unsubscribe()


class RealtimeSync:
    def __init__(self, feed: ChangeFeed, conversations: ConversationRepository, messages: MessageRepository):
        self.feed = feed
        self.conversations = conversations
        self.messages = messages

    def subscribe_to_conversations(self, user_id: int, callback: Callback) -> Subscription:
        """Call `callback` with the user's conversations (most recent first) after every change."""
        async def refresh(event: ChangeEvent) -> None:
            await _deliver(callback, await self.conversations.list_for_user(user_id))

        return Subscription(self.feed.subscribe(Conversation.__tablename__, user_id, refresh))

    def subscribe_to_messages(self, user_id: int, callback: Callback) -> Subscription:
        """Call `callback` with all of the user's messages (oldest first) after every change."""
        async def refresh(event: ChangeEvent) -> None:
            await _deliver(callback, await self.messages.list_for_user(user_id))

        return Subscription(self.feed.subscribe(Message.__tablename__, user_id, refresh))

    async def snapshot_conversations(self, user_id: int) -> List[ConversationRead]:
        return await self.conversations.list_for_user(user_id)

    async def snapshot_messages(self, user_id: int) -> List[ChatMessage]:
        return await self.messages.list_for_user(user_id)


async def _deliver(callback: Callback, items: Sequence[Any]) -> None:
    result = callback(list(items))
    if inspect.isawaitable(result):
        await result
