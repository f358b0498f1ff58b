"""
Pydantic schemas for conversations, messages and the send flow.
"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional
from barberbot.models.conversation import DEFAULT_TITLE
from barberbot.models.message import Sender


class ChatMessage(BaseModel):
    """A single message as seen by clients"""
    id: str
    content: str
    sender: Sender
    timestamp: datetime
    user_id: Optional[int] = None
    conversation_id: Optional[str] = None

    model_config = {"from_attributes": True}


class ConversationRead(BaseModel):
    """A conversation without its messages"""
    id: str
    user_id: int
    title: str
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime

    model_config = {"from_attributes": True}


class ConversationCreate(BaseModel):
    """Request schema for starting a conversation"""
    title: str = Field(DEFAULT_TITLE, min_length=1, max_length=200)


class ConversationUpdate(BaseModel):
    """Request schema for renaming a conversation"""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)


class SendMessageRequest(BaseModel):
    """Request schema for sending a chat message"""
    message: str = Field(..., min_length=1)
    conversationId: Optional[str] = None


class SendMessageResponse(BaseModel):
    """Outcome of one send: both persisted messages plus anything that went wrong"""
    conversationId: Optional[str] = None
    userMessage: Optional[ChatMessage] = None
    botMessage: ChatMessage
    botError: bool = False
    errors: List[str] = []


class RealtimeUpdate(BaseModel):
    """Frame pushed over the realtime websocket"""
    type: Literal["conversations", "messages"]
    data: list
