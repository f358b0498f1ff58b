"""
Message model for storing individual chat messages.
"""
import enum
import uuid
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum, Index
from sqlalchemy.orm import relationship
from barberbot.db.database import Base, utcnow


class Sender(str, enum.Enum):
    """Who wrote a message"""
    USER = "user"
    BOT = "bot"


class Message(Base):
    """
    Message table to store individual messages.

    Fields:
        id: Opaque unique identifier (uuid hex)
        user_id: Foreign key to the owning user
        conversation_id: Parent conversation, NULL for legacy messages saved before conversations existed
        content: The actual message content
        sender: user or bot
        timestamp: When the message was written; display order within a conversation
    """
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_conversation_timestamp", "conversation_id", "timestamp"),
    )

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    conversation_id = Column(String(32), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=True)
    content = Column(Text, nullable=False)
    sender = Column(
        Enum(Sender, name="message_sender", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
    )
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="messages")
    conversation = relationship("Conversation", back_populates="messages")

    def __repr__(self):
        content_preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"<Message(id='{self.id}', sender={self.sender}, content='{content_preview}')>"
