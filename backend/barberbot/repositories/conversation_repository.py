"""
Conversation repository - CRUD over conversations scoped to their owner.

Every query filters on user_id, so a conversation owned by someone else looks
exactly like a missing one. Failures are logged and reported as None, [] or
False; get_or_raise() is the one method that raises.
"""
import logging
import re
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from barberbot.core.errors import (
    STORE_EXCEPTIONS,
    NotFoundOrUnauthorized,
    StoreError,
    translate_store_error,
)
from barberbot.db.change_feed import ChangeEvent, ChangeFeed, ChangeType
from barberbot.db.database import utcnow
from barberbot.models.conversation import Conversation, DEFAULT_TITLE
from barberbot.models.message import Message, Sender
from barberbot.schemas.chat import ConversationRead

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50


def title_from_content(content: str) -> str:
    """Whitespace-collapsed first 50 characters of a message, with an ellipsis when cut."""
    text = re.sub(r"\s+", " ", content or "").strip()
    if not text:
        return DEFAULT_TITLE
    return text[:TITLE_MAX_LENGTH] + ("..." if len(text) > TITLE_MAX_LENGTH else "")


class ConversationRepository:
    """Data access for the conversations table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], feed: Optional[ChangeFeed] = None):
        self._session_factory = session_factory
        self._feed = feed

    def _publish(self, change: ChangeType, user_id: int, conversation_id: Optional[str]) -> None:
        if self._feed is not None:
            self._feed.publish(ChangeEvent(Conversation.__tablename__, change, user_id, conversation_id))

    async def create(self, user_id: int, title: str = DEFAULT_TITLE) -> Optional[ConversationRead]:
        """
        Create a new conversation for a user.

        Returns:
            The stored conversation, or None if the insert was rejected
        """
        now = utcnow()
        try:
            async with self._session_factory() as db:
                conversation = Conversation(
                    user_id=user_id,
                    title=title,
                    created_at=now,
                    updated_at=now,
                    last_message_at=now,
                )
                db.add(conversation)
                await db.commit()
                await db.refresh(conversation)
                created = ConversationRead.model_validate(conversation)
        except STORE_EXCEPTIONS as e:
            logger.error("Error creating conversation for user_id=%s: %s", user_id, translate_store_error(e))
            return None

        logger.info("Created conversation %s for user_id=%s", created.id, user_id)
        self._publish(ChangeType.INSERT, user_id, created.id)
        return created

    async def list_for_user(self, user_id: int) -> List[ConversationRead]:
        """All conversations of a user, most recently active first."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Conversation)
                    .where(Conversation.user_id == user_id)
                    .order_by(Conversation.last_message_at.desc(), Conversation.created_at.desc())
                )
                return [ConversationRead.model_validate(c) for c in result.scalars().all()]
        except STORE_EXCEPTIONS as e:
            logger.error("Error fetching conversations for user_id=%s: %s", user_id, translate_store_error(e))
            return []

    async def get_or_raise(self, user_id: int, conversation_id: str) -> ConversationRead:
        """
        Fetch a conversation owned by the user.

        Raises:
            NotFoundOrUnauthorized: no such conversation for this user
            TransportFailure / StoreWriteFailure: the store could not answer
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Conversation)
                    .where(Conversation.id == conversation_id)
                    .where(Conversation.user_id == user_id)
                )
                conversation = result.scalar_one_or_none()
        except STORE_EXCEPTIONS as e:
            raise translate_store_error(e) from e

        if conversation is None:
            raise NotFoundOrUnauthorized(f"Conversation {conversation_id} not found")
        return ConversationRead.model_validate(conversation)

    async def get(self, user_id: int, conversation_id: str) -> Optional[ConversationRead]:
        """Fetch a conversation owned by the user, or None."""
        try:
            return await self.get_or_raise(user_id, conversation_id)
        except NotFoundOrUnauthorized:
            return None
        except StoreError as e:
            logger.error("Error fetching conversation %s: %s", conversation_id, e)
            return None

    async def update_title(self, user_id: int, conversation_id: str, title: str) -> bool:
        """Rename a conversation. Renaming to the current title succeeds."""
        try:
            async with self._session_factory() as db:
                conversation = await self._owned(db, user_id, conversation_id)
                if conversation is None:
                    logger.warning("Cannot rename conversation %s: not found for user_id=%s", conversation_id, user_id)
                    return False
                conversation.title = title
                conversation.updated_at = utcnow()
                await db.commit()
        except STORE_EXCEPTIONS as e:
            logger.error("Error updating conversation title %s: %s", conversation_id, translate_store_error(e))
            return False

        self._publish(ChangeType.UPDATE, user_id, conversation_id)
        return True

    async def touch_last_message_at(self, user_id: int, conversation_id: str) -> bool:
        """Mark a conversation as active now. last_message_at never moves backwards."""
        now = utcnow()
        try:
            async with self._session_factory() as db:
                conversation = await self._owned(db, user_id, conversation_id)
                if conversation is None:
                    logger.warning("Cannot touch conversation %s: not found for user_id=%s", conversation_id, user_id)
                    return False
                conversation.last_message_at = max(conversation.last_message_at, now)
                conversation.updated_at = now
                await db.commit()
        except STORE_EXCEPTIONS as e:
            logger.error("Error updating last_message_at for %s: %s", conversation_id, translate_store_error(e))
            return False

        self._publish(ChangeType.UPDATE, user_id, conversation_id)
        return True

    async def generate_title(self, user_id: int, conversation_id: str) -> str:
        """
        Derive a title from the first user message of a conversation.

        Returns DEFAULT_TITLE when there is no user message yet or the
        store cannot be read.
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Message.content)
                    .join(Conversation, Conversation.id == Message.conversation_id)
                    .where(Conversation.id == conversation_id)
                    .where(Conversation.user_id == user_id)
                    .where(Message.sender == Sender.USER)
                    .order_by(Message.timestamp)
                    .limit(1)
                )
                first_content = result.scalar_one_or_none()
        except STORE_EXCEPTIONS as e:
            logger.error("Error generating title for %s: %s", conversation_id, translate_store_error(e))
            return DEFAULT_TITLE

        if first_content is None:
            return DEFAULT_TITLE
        return title_from_content(first_content)

    async def delete(self, user_id: int, conversation_id: str) -> bool:
        """Delete a conversation; the store removes its messages (ON DELETE CASCADE)."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    delete(Conversation)
                    .where(Conversation.id == conversation_id)
                    .where(Conversation.user_id == user_id)
                )
                await db.commit()
        except STORE_EXCEPTIONS as e:
            logger.error("Error deleting conversation %s: %s", conversation_id, translate_store_error(e))
            return False

        if result.rowcount == 0:
            logger.warning("Cannot delete conversation %s: not found for user_id=%s", conversation_id, user_id)
            return False

        logger.info("Deleted conversation %s for user_id=%s", conversation_id, user_id)
        self._publish(ChangeType.DELETE, user_id, conversation_id)
        if self._feed is not None:
            # cascaded message rows
            self._feed.publish(ChangeEvent(Message.__tablename__, ChangeType.DELETE, user_id, None))
        return True

    @staticmethod
    async def _owned(db: AsyncSession, user_id: int, conversation_id: str) -> Optional[Conversation]:
        result = await db.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .where(Conversation.user_id == user_id)
        )
        return result.scalar_one_or_none()
