"""Tests for the update stream."""

import asyncio

import pytest

from parcelwatch.models import TrackingUpdate
from parcelwatch.stream import UpdateStream


def _update(number: str) -> TrackingUpdate:
    return TrackingUpdate(tracking_number=number, user_id=1)


class TestSynchronousHandOff:
    """Tests for the default unbuffered stream."""

    @pytest.mark.asyncio
    async def test_publish_waits_for_consumer(self):
        """publish() only returns once the update was received."""
        stream = UpdateStream()

        publish = asyncio.create_task(stream.publish(_update("A")))
        await asyncio.sleep(0.01)
        assert not publish.done()

        received = await stream.get()
        await asyncio.wait_for(publish, timeout=1)

        assert received.tracking_number == "A"

    @pytest.mark.asyncio
    async def test_second_publisher_waits_its_turn(self):
        """Updates are received in publish order."""
        stream = UpdateStream()

        first = asyncio.create_task(stream.publish(_update("A")))
        await asyncio.sleep(0)
        second = asyncio.create_task(stream.publish(_update("B")))
        await asyncio.sleep(0.01)

        assert (await stream.get()).tracking_number == "A"
        assert (await stream.get()).tracking_number == "B"
        await asyncio.wait_for(asyncio.gather(first, second), timeout=1)


class TestBufferedStream:
    """Tests for the bounded queue mode."""

    @pytest.mark.asyncio
    async def test_publish_returns_while_buffer_has_room(self):
        stream = UpdateStream(buffer_size=2)

        await asyncio.wait_for(stream.publish(_update("A")), timeout=1)
        await asyncio.wait_for(stream.publish(_update("B")), timeout=1)

        assert stream.pending == 2

    @pytest.mark.asyncio
    async def test_full_buffer_blocks_instead_of_dropping(self):
        stream = UpdateStream(buffer_size=1)
        await stream.publish(_update("A"))

        blocked = asyncio.create_task(stream.publish(_update("B")))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        assert (await stream.get()).tracking_number == "A"
        await asyncio.wait_for(blocked, timeout=1)
        assert (await stream.get()).tracking_number == "B"

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        stream = UpdateStream(buffer_size=3)
        for number in ("A", "B", "C"):
            await stream.publish(_update(number))

        received = []
        async for update in stream:
            received.append(update.tracking_number)
            if len(received) == 3:
                break

        assert received == ["A", "B", "C"]

    def test_negative_buffer_rejected(self):
        with pytest.raises(ValueError):
            UpdateStream(buffer_size=-1)
