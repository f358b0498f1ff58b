"""
Client for the webhook that generates BarberBot's replies.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

import httpx

from barberbot.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_REPLY = "I'm here to help! How can I assist you today?"
FALLBACK_REPLY = "I'm having trouble connecting right now. Please try again in a moment."

# Checked in order; the first non-empty string wins
REPLY_FIELDS = ("output", "message", "response", "reply")


@dataclass
class BotReply:
    text: str
    ok: bool = True
    error: Optional[str] = None


def extract_reply(payload) -> str:
    """Pull the reply text out of a webhook response body."""
    if isinstance(payload, list) and payload:
        # workflow tools often wrap the result in a one-element array
        payload = payload[0]
    if isinstance(payload, str):
        return payload.strip() or DEFAULT_REPLY
    if isinstance(payload, dict):
        for key in REPLY_FIELDS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return DEFAULT_REPLY


class BotResponder:
    def __init__(
        self,
        webhook_url: str,
        timeout: float = 30.0,
        source: str = "chat-interface",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.source = source
        self._transport = transport

    async def reply(self, message: str) -> BotReply:
        """
        Send a user message to the webhook and return the bot's answer.

        Never raises: HTTP errors, bad JSON and network failures all come back
        as the fixed fallback reply with ok=False.
        """
        payload = {
            "message": message,
            "sender": "user",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": self.source,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Bot webhook returned HTTP %s", e.response.status_code)
            return BotReply(FALLBACK_REPLY, ok=False, error=f"HTTP error! status: {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("Error reaching bot webhook: %s", e)
            return BotReply(FALLBACK_REPLY, ok=False, error=str(e) or type(e).__name__)
        except ValueError as e:
            logger.error("Bot webhook returned invalid JSON: %s", e)
            return BotReply(FALLBACK_REPLY, ok=False, error="Invalid JSON in bot response")

        return BotReply(extract_reply(data))


@lru_cache
def get_bot_responder() -> BotResponder:
    return BotResponder(
        webhook_url=settings.BOT_WEBHOOK_URL,
        timeout=settings.BOT_WEBHOOK_TIMEOUT,
        source=settings.BOT_SOURCE,
    )
