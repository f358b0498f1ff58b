"""
Message repository - CRUD over chat messages scoped to their owner.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from barberbot.core.errors import STORE_EXCEPTIONS, translate_store_error
from barberbot.db.change_feed import ChangeEvent, ChangeFeed, ChangeType
from barberbot.db.database import utcnow
from barberbot.models.conversation import Conversation
from barberbot.models.message import Message, Sender
from barberbot.repositories.conversation_repository import ConversationRepository
from barberbot.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)


class MessageRepository:
    """
    Data access for the chat_messages table.

    Saving a message into a conversation also bumps the conversation's
    last_message_at. The two writes are separate: if the bump fails the
    message stays saved and the conversation just sorts a little stale.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        conversations: ConversationRepository,
        feed: Optional[ChangeFeed] = None,
    ):
        self._session_factory = session_factory
        self._conversations = conversations
        self._feed = feed

    def _publish(self, change: ChangeType, user_id: int, message_id: Optional[str] = None) -> None:
        if self._feed is not None:
            self._feed.publish(ChangeEvent(Message.__tablename__, change, user_id, message_id))

    async def save(
        self,
        user_id: int,
        content: str,
        sender: Sender,
        conversation_id: Optional[str] = None,
    ) -> Optional[ChatMessage]:
        """
        Save a chat message.

        Args:
            user_id: Owner of the message
            content: Message text
            sender: Sender.USER or Sender.BOT
            conversation_id: Parent conversation; None stores a legacy message

        Returns:
            The stored message, or None if it could not be saved
        """
        try:
            sender = Sender(sender)
        except ValueError:
            logger.error("Cannot save message: unknown sender %r", sender)
            return None

        try:
            async with self._session_factory() as db:
                if conversation_id is not None:
                    owned = await db.execute(
                        select(Conversation.id)
                        .where(Conversation.id == conversation_id)
                        .where(Conversation.user_id == user_id)
                    )
                    if owned.scalar_one_or_none() is None:
                        logger.warning(
                            "Refusing to save message: conversation %s not found for user_id=%s",
                            conversation_id, user_id,
                        )
                        return None

                message = Message(
                    user_id=user_id,
                    conversation_id=conversation_id,
                    content=content,
                    sender=sender,
                    timestamp=await self._next_timestamp(db, user_id, conversation_id),
                )
                db.add(message)
                await db.commit()
                await db.refresh(message)
                saved = ChatMessage.model_validate(message)
        except STORE_EXCEPTIONS as e:
            logger.error("Error saving message for user_id=%s: %s", user_id, translate_store_error(e))
            return None

        self._publish(ChangeType.INSERT, user_id, saved.id)

        if conversation_id is not None:
            touched = await self._conversations.touch_last_message_at(user_id, conversation_id)
            if not touched:
                logger.warning("Message %s saved but conversation %s was not touched", saved.id, conversation_id)

        return saved

    async def list_for_conversation(self, user_id: int, conversation_id: str) -> List[ChatMessage]:
        """Messages of one conversation, oldest first."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Message)
                    .where(Message.user_id == user_id)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(Message.timestamp.asc())
                )
                return [ChatMessage.model_validate(m) for m in result.scalars().all()]
        except STORE_EXCEPTIONS as e:
            logger.error("Error fetching messages for conversation %s: %s", conversation_id, translate_store_error(e))
            return []

    async def list_for_user(self, user_id: int) -> List[ChatMessage]:
        """Every message of a user regardless of conversation, oldest first (legacy view)."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Message)
                    .where(Message.user_id == user_id)
                    .order_by(Message.timestamp.asc())
                )
                return [ChatMessage.model_validate(m) for m in result.scalars().all()]
        except STORE_EXCEPTIONS as e:
            logger.error("Error fetching messages for user_id=%s: %s", user_id, translate_store_error(e))
            return []

    async def count_user_messages(self, user_id: int, conversation_id: str) -> int:
        """Number of user-authored messages in a conversation; -1 if the store cannot be read."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(func.count(Message.id))
                    .where(Message.user_id == user_id)
                    .where(Message.conversation_id == conversation_id)
                    .where(Message.sender == Sender.USER)
                )
                return result.scalar_one()
        except STORE_EXCEPTIONS as e:
            logger.error("Error counting messages for conversation %s: %s", conversation_id, translate_store_error(e))
            return -1

    async def clear_for_user(self, user_id: int) -> bool:
        """Delete all messages of a user, in every conversation."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(delete(Message).where(Message.user_id == user_id))
                await db.commit()
        except STORE_EXCEPTIONS as e:
            logger.error("Error clearing messages for user_id=%s: %s", user_id, translate_store_error(e))
            return False

        logger.info("Cleared %s messages for user_id=%s", result.rowcount, user_id)
        self._publish(ChangeType.DELETE, user_id)
        return True

    async def delete_one(self, user_id: int, message_id: str) -> bool:
        """Delete a single message, only if the user owns it."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    delete(Message)
                    .where(Message.id == message_id)
                    .where(Message.user_id == user_id)
                )
                await db.commit()
        except STORE_EXCEPTIONS as e:
            logger.error("Error deleting message %s: %s", message_id, translate_store_error(e))
            return False

        if result.rowcount == 0:
            logger.warning("Cannot delete message %s: not found for user_id=%s", message_id, user_id)
            return False

        self._publish(ChangeType.DELETE, user_id, message_id)
        return True

    @staticmethod
    async def _next_timestamp(db: AsyncSession, user_id: int, conversation_id: Optional[str]):
        # Strictly after the newest message of the thread so display order matches insertion order
        query = select(func.max(Message.timestamp)).where(Message.user_id == user_id)
        if conversation_id is None:
            query = query.where(Message.conversation_id.is_(None))
        else:
            query = query.where(Message.conversation_id == conversation_id)
        latest = (await db.execute(query)).scalar_one_or_none()

        now = utcnow()
        if latest is not None and now <= latest:
            return latest + timedelta(microseconds=1)
        return now
