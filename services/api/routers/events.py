import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket

from roomhub.config import get_settings
from roomhub.notifications import QueueChannel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.websocket("/ws")
async def events(websocket: WebSocket) -> None:
    """Stream lifecycle events to the client until it disconnects.

    Incoming frames, text or binary, are read and ignored; the socket is push-only.
    Events raised during the handshake are buffered and sent once it completes.
    """
    registry = websocket.app.state.services.registry
    channel = QueueChannel(
        websocket.send_text,
        asyncio.get_running_loop(),
        max_pending=get_settings().notification_buffer_size,
    )
    pump: Optional[asyncio.Task] = None
    try:
        registry.add(channel)
        await websocket.accept()
        pump = asyncio.create_task(channel.pump())
        logger.info("Notification client connected (%d open)", len(registry))
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("Notification client disconnected")
                break
    finally:
        registry.discard(channel)
        channel.close()
        if pump is not None:
            try:
                await asyncio.wait_for(pump, timeout=1.0)
            except asyncio.TimeoutError:
                pump.cancel()
