"""
Conversation model for storing chat threads.
"""
import uuid
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from barberbot.db.database import Base, utcnow

DEFAULT_TITLE = "New Chat"


class Conversation(Base):
    """
    Conversation table to store individual chat sessions.

    Fields:
        id: Opaque unique identifier (uuid hex)
        user_id: Foreign key to user who owns this conversation, never reassigned
        title: Conversation title, generated from the first user message
        created_at: When conversation was created
        updated_at: When conversation was last updated
        last_message_at: When a message was last appended, never moves backwards
    """
    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_user_last_message", "user_id", "last_message_at"),
    )

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False, default=DEFAULT_TITLE)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    last_message_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.timestamp",
    )

    def __repr__(self):
        return f"<Conversation(id='{self.id}', user_id={self.user_id}, title='{self.title}')>"
