"""
API dependencies for authentication, database access and the chat services.
These functions are used with FastAPI's Depends() for dependency injection.
"""
import logging
from typing import AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from barberbot.db.change_feed import ChangeFeed, get_change_feed
from barberbot.db.database import get_session_factory
from barberbot.core.security import user_id_from_token
from barberbot.models.user import User
from barberbot.repositories.conversation_repository import ConversationRepository
from barberbot.repositories.message_repository import MessageRepository
from barberbot.services.bot_responder import BotResponder, get_bot_responder
from barberbot.services.chat_service import ChatService
from barberbot.services.realtime_service import RealtimeSync

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for Swagger docs
security = HTTPBearer()


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)
) -> AsyncIterator[AsyncSession]:
    """
    Dependency function to get database session.

    Yields:
        AsyncSession: Database session
    """
    async with session_factory() as session:
        yield session


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer credentials from Authorization header
        db: Database session

    Returns:
        User: The authenticated user object

    Raises:
        HTTPException: If token is invalid or user not found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("Token for unknown user_id=%s", user_id)
        raise credentials_exception

    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency to ensure user is active.

    Raises:
        HTTPException: If user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )
    return current_user


def get_conversation_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
) -> ConversationRepository:
    return ConversationRepository(session_factory, feed)


def get_message_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    conversations: ConversationRepository = Depends(get_conversation_repository),
    feed: ChangeFeed = Depends(get_change_feed),
) -> MessageRepository:
    return MessageRepository(session_factory, conversations, feed)


def get_chat_service(
    conversations: ConversationRepository = Depends(get_conversation_repository),
    messages: MessageRepository = Depends(get_message_repository),
    bot: BotResponder = Depends(get_bot_responder),
) -> ChatService:
    return ChatService(conversations, messages, bot)


def get_realtime_sync(
    conversations: ConversationRepository = Depends(get_conversation_repository),
    messages: MessageRepository = Depends(get_message_repository),
    feed: ChangeFeed = Depends(get_change_feed),
) -> RealtimeSync:
    return RealtimeSync(feed, conversations, messages)
