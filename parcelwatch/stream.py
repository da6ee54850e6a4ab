"""
Update stream between the tracking service and the notification consumer.
"""

import asyncio
from typing import Optional

from parcelwatch.models import TrackingUpdate


class UpdateStream:
    """
    Hand-off channel for tracking updates.

    With buffer_size=0 publish() is a synchronous hand-off: the publisher is
    suspended until a consumer has received the update. With buffer_size>0
    updates are queued and publish() only blocks while the buffer is full.
    Updates are never dropped.
    """

    def __init__(self, buffer_size: int = 0):
        if buffer_size < 0:
            raise ValueError("buffer_size must not be negative")
        self.buffer_size = buffer_size
        self._queue: asyncio.Queue[tuple[TrackingUpdate, Optional[asyncio.Future]]] = (
            asyncio.Queue(maxsize=max(buffer_size, 1))
        )

    @property
    def pending(self) -> int:
        """Updates published but not yet received."""
        return self._queue.qsize()

    async def publish(self, update: TrackingUpdate):
        """Hand an update to the consumer."""
        if self.buffer_size > 0:
            await self._queue.put((update, None))
            return

        received = asyncio.get_running_loop().create_future()
        await self._queue.put((update, received))
        await received

    async def get(self) -> TrackingUpdate:
        """Receive the next update."""
        update, received = await self._queue.get()
        if received is not None and not received.done():
            received.set_result(None)
        return update

    def __aiter__(self):
        return self

    async def __anext__(self) -> TrackingUpdate:
        return await self.get()
