"""WebSocket relay for realtime appointment events."""

import asyncio
import contextlib

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from app.config import settings
from app.core.exceptions import UnauthorizedException
from app.core.redis_client import get_async_redis_client
from app.dependencies import account_from_token
from app.services.realtime import BROADCAST_ROOM, user_room

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = Query(...)) -> None:
    """
    Relay events for the caller's room and the broadcast room.

    Each Redis message is already a JSON ``{"event", "data"}`` frame and is
    forwarded as text.
    """
    try:
        account = account_from_token(token)
    except UnauthorizedException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    prefix = settings.realtime_channel_prefix
    pubsub = get_async_redis_client().pubsub()
    await pubsub.subscribe(prefix + user_room(account.id), prefix + BROADCAST_ROOM)
    logger.info("realtime_client_connected", account_id=str(account.id))

    async def relay() -> None:
        async for message in pubsub.listen():
            if message["type"] == "message":
                await websocket.send_text(message["data"])

    relay_task = asyncio.create_task(relay())
    try:
        # Client frames are ignored; receiving detects the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        relay_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await relay_task
        await pubsub.unsubscribe()
        await pubsub.aclose()
        logger.info("realtime_client_disconnected", account_id=str(account.id))
