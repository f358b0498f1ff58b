"""
Realtime endpoint - pushes fresh conversation and message lists over a websocket.
"""
import logging
from typing import List, Sequence

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from barberbot.api.deps import get_realtime_sync
from barberbot.core.security import user_id_from_token
from barberbot.db.database import get_session_factory
from barberbot.models.user import User
from barberbot.schemas.chat import RealtimeUpdate
from barberbot.services.realtime_service import RealtimeSync

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/realtime", tags=["Realtime"])


async def _authenticate(token: str, session_factory: async_sessionmaker[AsyncSession]) -> User | None:
    user_id = user_id_from_token(token)
    if user_id is None:
        return None
    async with session_factory() as db:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


@router.websocket("/ws")
async def realtime_updates(
    websocket: WebSocket,
    token: str = Query(...),
    realtime: RealtimeSync = Depends(get_realtime_sync),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Stream the user's conversations and messages.

    Sends both full lists on connect, then the affected list again after
    every change. Frames look like {"type": "conversations", "data": [...]}.
    """
    user = await _authenticate(token, session_factory)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    user_id = user.id
    logger.info("Realtime connected for user_id=%s", user_id)

    async def push(kind: str, items: Sequence[BaseModel]) -> None:
        update = RealtimeUpdate(type=kind, data=[item.model_dump(mode="json") for item in items])
        await websocket.send_json(update.model_dump())

    async def push_conversations(items: List[BaseModel]) -> None:
        await push("conversations", items)

    async def push_messages(items: List[BaseModel]) -> None:
        await push("messages", items)

    # subscribe first so nothing committed after the snapshot is missed
    subscriptions = [
        realtime.subscribe_to_conversations(user_id, push_conversations),
        realtime.subscribe_to_messages(user_id, push_messages),
    ]
    try:
        await push_conversations(await realtime.snapshot_conversations(user_id))
        await push_messages(await realtime.snapshot_messages(user_id))
        while True:
            # clients only ping; reading keeps disconnects visible
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Realtime disconnected for user_id=%s", user_id)
    finally:
        for subscription in subscriptions:
            subscription.unsubscribe()
