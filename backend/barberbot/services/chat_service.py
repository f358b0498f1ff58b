"""
Chat service - the flow around a chat session.

Picks the conversation a user lands in, seeds the welcome message, names
conversations after their first user message and runs the send flow
(user message -> bot reply -> both persisted).
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from barberbot.core.config import settings
from barberbot.db.database import utcnow
from barberbot.models.conversation import DEFAULT_TITLE
from barberbot.models.message import Sender
from barberbot.repositories.conversation_repository import ConversationRepository
from barberbot.repositories.message_repository import MessageRepository
from barberbot.schemas.chat import ChatMessage, ConversationRead
from barberbot.services.bot_responder import BotResponder

logger = logging.getLogger(__name__)

FALLBACK_WELCOME_ID = "1"


@dataclass
class SendResult:
    """What happened during one send. bot_message is always set."""
    conversation_id: Optional[str]
    user_message: Optional[ChatMessage]
    bot_message: ChatMessage
    bot_ok: bool = True
    errors: List[str] = field(default_factory=list)


class ChatService:
    def __init__(
        self,
        conversations: ConversationRepository,
        messages: MessageRepository,
        bot: BotResponder,
        welcome_message: Optional[str] = None,
    ):
        self.conversations = conversations
        self.messages = messages
        self.bot = bot
        self.welcome_message = welcome_message or settings.WELCOME_MESSAGE

    async def get_or_create_active_conversation(self, user_id: int) -> Optional[ConversationRead]:
        """
        Return the user's most recently active conversation, creating a
        "New Chat" only when the user has none at all.
        """
        conversations = await self.conversations.list_for_user(user_id)
        if conversations:
            return conversations[0]
        return await self.conversations.create(user_id, DEFAULT_TITLE)

    async def start_new_chat(self, user_id: int, title: str = DEFAULT_TITLE) -> Optional[ConversationRead]:
        return await self.conversations.create(user_id, title)

    async def get_or_create_welcome_message(self, user_id: int, conversation_id: Optional[str] = None) -> ChatMessage:
        """
        Return the first message of the conversation (or of the user, without
        a conversation id), saving the welcome message first if there are none.

        Always returns something displayable: if the welcome message cannot be
        saved, an unsaved stand-in with id "1" is returned instead.
        """
        if conversation_id is not None:
            existing = await self.messages.list_for_conversation(user_id, conversation_id)
        else:
            existing = await self.messages.list_for_user(user_id)

        if existing:
            return existing[0]

        welcome = await self.messages.save(user_id, self.welcome_message, Sender.BOT, conversation_id)
        if welcome is not None:
            return welcome

        logger.warning("Welcome message could not be saved for user_id=%s, using in-memory copy", user_id)
        return ChatMessage(
            id=FALLBACK_WELCOME_ID,
            content=self.welcome_message,
            sender=Sender.BOT,
            timestamp=utcnow(),
            conversation_id=conversation_id,
        )

    async def update_conversation_title_from_first_message(self, user_id: int, conversation_id: str) -> bool:
        """
        Title a conversation after its first user message.

        Only acts while the conversation holds exactly one user message, so a
        title is never regenerated later on. Returns True if a title was set.
        """
        if await self.messages.count_user_messages(user_id, conversation_id) != 1:
            return False

        title = await self.conversations.generate_title(user_id, conversation_id)
        if title == DEFAULT_TITLE:
            return False
        return await self.conversations.update_title(user_id, conversation_id, title)

    async def send_message(self, user_id: int, content: str, conversation_id: Optional[str] = None) -> SendResult:
        """
        Run one round trip: persist the user message, ask the bot, persist the reply.

        Saves happen one after another so stored order matches what the user
        saw. Nothing here raises; problems are listed in SendResult.errors.
        """
        errors: List[str] = []

        if conversation_id is None:
            conversation = await self.get_or_create_active_conversation(user_id)
            if conversation is None:
                errors.append("Failed to open a conversation")
            else:
                conversation_id = conversation.id

        user_message = await self.messages.save(user_id, content, Sender.USER, conversation_id)
        if user_message is None:
            errors.append("Failed to save your message")
        elif conversation_id is not None:
            await self.update_conversation_title_from_first_message(user_id, conversation_id)

        reply = await self.bot.reply(content)
        if not reply.ok:
            errors.append(reply.error or "Bot unavailable")

        bot_message = await self.messages.save(user_id, reply.text, Sender.BOT, conversation_id)
        if bot_message is None:
            errors.append("Failed to save bot response")
            bot_message = ChatMessage(
                id=f"local-{utcnow().timestamp()}",
                content=reply.text,
                sender=Sender.BOT,
                timestamp=utcnow(),
                user_id=user_id,
                conversation_id=conversation_id,
            )

        return SendResult(
            conversation_id=conversation_id,
            user_message=user_message,
            bot_message=bot_message,
            bot_ok=reply.ok,
            errors=errors,
        )


class SessionState(str, enum.Enum):
    LOADING = "loading"
    EMPTY = "empty"
    ACTIVE = "active"
    SENDING = "sending"


class ChatSession:
    """
    Client-side view of one chat: state plus the messages on screen.

    LOADING -> EMPTY (no conversation) -> ACTIVE -> SENDING -> ACTIVE.
    Messages are shown optimistically and replaced by their stored copies
    once saved.
    """

    def __init__(self, service: ChatService, user_id: int):
        self.service = service
        self.user_id = user_id
        self.state = SessionState.LOADING
        self.conversation: Optional[ConversationRead] = None
        self.messages: List[ChatMessage] = []
        self.notifications: List[str] = []

    async def load(self, conversation_id: Optional[str] = None) -> SessionState:
        self.state = SessionState.LOADING
        if conversation_id is not None:
            self.conversation = await self.service.conversations.get(self.user_id, conversation_id)
        else:
            self.conversation = await self.service.get_or_create_active_conversation(self.user_id)

        if self.conversation is None:
            self.notifications.append("Failed to load conversation")
            self.messages = []
            self.state = SessionState.EMPTY
            return self.state

        welcome = await self.service.get_or_create_welcome_message(self.user_id, self.conversation.id)
        self.messages = await self.service.messages.list_for_conversation(self.user_id, self.conversation.id)
        if not self.messages:
            self.messages = [welcome]
        self.state = SessionState.ACTIVE
        return self.state

    async def new_chat(self) -> SessionState:
        conversation = await self.service.start_new_chat(self.user_id)
        if conversation is None:
            self.notifications.append("Failed to create new chat")
            return self.state
        return await self.load(conversation.id)

    async def send(self, content: str) -> Optional[SendResult]:
        content = content.strip()
        if not content or self.state is not SessionState.ACTIVE:
            return None

        self.state = SessionState.SENDING
        pending = ChatMessage(
            id=f"pending-{len(self.messages)}",
            content=content,
            sender=Sender.USER,
            timestamp=utcnow(),
            user_id=self.user_id,
            conversation_id=self.conversation.id,
        )
        self.messages.append(pending)
        try:
            result = await self.service.send_message(self.user_id, content, self.conversation.id)
        finally:
            self.state = SessionState.ACTIVE

        if result.user_message is not None:
            self.messages[self.messages.index(pending)] = result.user_message
        self.messages.append(result.bot_message)
        self.notifications.extend(result.errors)
        return result
