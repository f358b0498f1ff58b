"""
Chat endpoints for sending messages and managing conversations.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from barberbot.api.deps import (
    get_current_active_user,
    get_chat_service,
    get_conversation_repository,
    get_message_repository,
)
from barberbot.core.errors import NotFoundOrUnauthorized, StoreWriteFailure
from barberbot.models.user import User
from barberbot.repositories.conversation_repository import ConversationRepository
from barberbot.repositories.message_repository import MessageRepository
from barberbot.schemas.chat import (
    ChatMessage,
    ConversationCreate,
    ConversationRead,
    ConversationUpdate,
    SendMessageRequest,
    SendMessageResponse,
)
from barberbot.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    request: SendMessageRequest,
    current_user: User = Depends(get_current_active_user),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Send a chat message and get the bot's reply.

    Without a conversationId the message goes to the user's active
    conversation. The reply is always present; when the bot could not be
    reached it is the fallback apology and botError is true.
    """
    if request.conversationId:
        await chat.conversations.get_or_raise(current_user.id, request.conversationId)

    result = await chat.send_message(current_user.id, request.message, request.conversationId)
    for error in result.errors:
        logger.warning("Send for user_id=%s: %s", current_user.id, error)

    return SendMessageResponse(
        conversationId=result.conversation_id,
        userMessage=result.user_message,
        botMessage=result.bot_message,
        botError=not result.bot_ok,
        errors=result.errors,
    )


@router.get("/conversations", response_model=List[ConversationRead])
async def get_conversations(
    current_user: User = Depends(get_current_active_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
):
    """Get all conversations for the current user, most recently active first."""
    return await conversations.list_for_user(current_user.id)


@router.post("/conversations", response_model=ConversationRead, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    data: ConversationCreate,
    current_user: User = Depends(get_current_active_user),
    chat: ChatService = Depends(get_chat_service),
):
    """Start a new chat."""
    conversation = await chat.start_new_chat(current_user.id, data.title)
    if conversation is None:
        raise StoreWriteFailure("Failed to create conversation")
    return conversation


@router.get("/conversations/active", response_model=ConversationRead)
async def get_active_conversation(
    current_user: User = Depends(get_current_active_user),
    chat: ChatService = Depends(get_chat_service),
):
    """Most recently active conversation, created on first visit."""
    conversation = await chat.get_or_create_active_conversation(current_user.id)
    if conversation is None:
        raise StoreWriteFailure("Failed to open a conversation")
    return conversation


@router.get("/conversations/{conversation_id}", response_model=ConversationRead)
async def get_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_active_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
):
    return await conversations.get_or_raise(current_user.id, conversation_id)


@router.patch("/conversations/{conversation_id}", response_model=ConversationRead)
async def rename_conversation(
    conversation_id: str,
    data: ConversationUpdate,
    current_user: User = Depends(get_current_active_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
):
    """Rename a conversation."""
    await conversations.get_or_raise(current_user.id, conversation_id)
    if not await conversations.update_title(current_user.id, conversation_id, data.title):
        raise StoreWriteFailure("Failed to update conversation title")
    return await conversations.get_or_raise(current_user.id, conversation_id)


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_active_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
):
    """
    Delete a conversation.

    Messages are removed with it.
    """
    await conversations.get_or_raise(current_user.id, conversation_id)
    if not await conversations.delete(current_user.id, conversation_id):
        raise StoreWriteFailure("Failed to delete conversation")
    return {"message": "Conversation deleted successfully"}


@router.get("/conversations/{conversation_id}/messages", response_model=List[ChatMessage])
async def get_conversation_messages(
    conversation_id: str,
    current_user: User = Depends(get_current_active_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
    messages: MessageRepository = Depends(get_message_repository),
):
    """Messages of a conversation, oldest first."""
    await conversations.get_or_raise(current_user.id, conversation_id)
    return await messages.list_for_conversation(current_user.id, conversation_id)


@router.post("/conversations/{conversation_id}/welcome", response_model=ChatMessage)
async def get_conversation_welcome(
    conversation_id: str,
    current_user: User = Depends(get_current_active_user),
    chat: ChatService = Depends(get_chat_service),
):
    """First message of the conversation, seeding the welcome message if it is empty."""
    await chat.conversations.get_or_raise(current_user.id, conversation_id)
    return await chat.get_or_create_welcome_message(current_user.id, conversation_id)


@router.get("/messages", response_model=List[ChatMessage])
async def get_messages(
    current_user: User = Depends(get_current_active_user),
    messages: MessageRepository = Depends(get_message_repository),
):
    """Every message of the current user, oldest first."""
    return await messages.list_for_user(current_user.id)


@router.post("/welcome", response_model=ChatMessage)
async def get_welcome(
    current_user: User = Depends(get_current_active_user),
    chat: ChatService = Depends(get_chat_service),
):
    """Welcome message for users without conversations."""
    return await chat.get_or_create_welcome_message(current_user.id)


@router.delete("/messages")
async def clear_messages(
    current_user: User = Depends(get_current_active_user),
    messages: MessageRepository = Depends(get_message_repository),
):
    """Delete the current user's whole chat history."""
    if not await messages.clear_for_user(current_user.id):
        raise StoreWriteFailure("Failed to clear messages")
    return {"message": "Chat history cleared"}


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_active_user),
    messages: MessageRepository = Depends(get_message_repository),
):
    if not await messages.delete_one(current_user.id, message_id):
        raise NotFoundOrUnauthorized("Message not found")
    return {"message": "Message deleted successfully"}
