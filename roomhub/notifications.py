"""Real-time fan-out of lifecycle events to connected clients.

Delivery is best effort: an event reaches the channels open at broadcast
time and is never retried. Clients that miss one reconcile by refetching.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable, List, Literal, Optional, Protocol, Set, Union

from pydantic import BaseModel

from .models import BookingStatus
from .schemas import BookingDetail, BookingRead, ConflictPayload, RoomRead

logger = logging.getLogger(__name__)

EventType = Literal[
    "booking_created",
    "booking_updated",
    "booking_deleted",
    "room_created",
    "room_updated",
    "room_deleted",
    "conflict_detected",
]


class DeletedPayload(BaseModel):
    id: int
    status: Optional[BookingStatus] = None


class Event(BaseModel):
    type: EventType
    data: Union[BookingDetail, BookingRead, RoomRead, DeletedPayload, ConflictPayload]

    def to_json(self) -> str:
        return self.model_dump_json()


class Channel(Protocol):
    @property
    def is_open(self) -> bool: ...

    def deliver(self, message: str) -> None: ...

    def close(self) -> None: ...


class QueueChannel:
    """Channel bound to an event loop; ``pump`` writes queued frames to the client.

    ``deliver`` is safe to call from any thread and never waits on the client.
    At most ``max_pending`` frames are buffered; a client that falls further
    behind is dropped.
    """

    def __init__(
        self,
        send: Callable[[str], Awaitable[None]],
        loop: asyncio.AbstractEventLoop,
        max_pending: int = 100,
    ) -> None:
        self._send = send
        self._loop = loop
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=max_pending)
        self._open = True
        self._stopped = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._loop.is_closed()

    def deliver(self, message: str) -> None:
        self._loop.call_soon_threadsafe(self._enqueue, message)

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stop)

    def _enqueue(self, message: str) -> None:
        if self._stopped:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Notification client fell %d frames behind; dropping it", self._queue.maxsize)
            self._open = False
            self._stop()

    def _stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        # pending frames still flush unless the buffer is full
        if self._queue.full():
            self._discard_pending()
        self._queue.put_nowait(None)

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    async def pump(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                await self._send(message)
            except Exception as exc:
                logger.info("Notification channel closed while sending: %s", exc)
                self._open = False
                return


class ChannelRegistry:
    """Process-scoped set of connected channels.

    Created empty at application start and drained with :meth:`close_all`
    on shutdown.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: Set[Channel] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def add(self, channel: Channel) -> None:
        with self._lock:
            self._channels.add(channel)

    def discard(self, channel: Channel) -> None:
        with self._lock:
            self._channels.discard(channel)

    def broadcast(self, event: Event) -> int:
        """Send ``event`` to every open channel and return how many accepted it."""
        message = event.to_json()
        with self._lock:
            channels: List[Channel] = list(self._channels)
        delivered = 0
        for channel in channels:
            if not channel.is_open:
                self.discard(channel)
                continue
            try:
                channel.deliver(message)
            except Exception:
                logger.warning("Dropping notification channel after delivery failure", exc_info=True)
                self.discard(channel)
                continue
            delivered += 1
        logger.debug("Broadcast %s to %d channel(s)", event.type, delivered)
        return delivered

    def close_all(self) -> None:
        with self._lock:
            channels = list(self._channels)
            self._channels.clear()
        for channel in channels:
            channel.close()
