"""
Models package - exports all database models.
"""
from barberbot.models.user import User
from barberbot.models.conversation import Conversation, DEFAULT_TITLE
from barberbot.models.message import Message, Sender

__all__ = [
    "User",
    "Conversation",
    "DEFAULT_TITLE",
    "Message",
    "Sender",
]
