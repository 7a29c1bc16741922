# Tests for the broadcast hub
# Created: 2026-02-14
# Uses in-memory fake subscribers in place of WebSocket connections

import asyncio
import json

import pytest

from missionsync.hub import BroadcastHub
from missionsync.models import EventEnvelope, EventType


class FakeSubscriber:
    """Records every frame it receives."""

    def __init__(self):
        self.frames: list[dict] = []

    async def send_text(self, data: str) -> None:
        self.frames.append(json.loads(data))


class BrokenSubscriber:
    """Fails every send (a dropped connection)."""

    def __init__(self, fail_after: int = 0):
        self.sent = 0
        self.fail_after = fail_after

    async def send_text(self, data: str) -> None:
        if self.sent >= self.fail_after:
            raise ConnectionResetError("gone")
        self.sent += 1


class SlowSubscriber:
    """Never finishes a send."""

    async def send_text(self, data: str) -> None:
        await asyncio.sleep(10)


class TestBroadcastHub:
    """Tests for BroadcastHub."""

    @pytest.mark.asyncio
    async def test_register_acknowledges(self):
        hub = BroadcastHub()
        sub = FakeSubscriber()
        assert await hub.register(sub)
        assert sub in hub
        assert sub.frames[0]["type"] == "connected"
        assert "timestamp" in sub.frames[0]["payload"]

    @pytest.mark.asyncio
    async def test_register_failure_not_added(self):
        hub = BroadcastHub()
        assert not await hub.register(BrokenSubscriber())
        assert len(hub) == 0

    @pytest.mark.asyncio
    async def test_publish_to_all(self):
        hub = BroadcastHub()
        subs = [FakeSubscriber() for _ in range(3)]
        for sub in subs:
            await hub.register(sub)

        delivered = await hub.publish(EventEnvelope(EventType.MISSION_NEW, {"id": "m1"}))
        assert delivered == 3
        for sub in subs:
            assert sub.frames[-1] == {"type": "mission:new", "payload": {"id": "m1"}}

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        assert await BroadcastHub().broadcast(EventType.STATS_UPDATE) == 0

    @pytest.mark.asyncio
    async def test_failed_subscriber_evicted(self):
        """A failing send drops that subscriber only."""
        hub = BroadcastHub()
        good = FakeSubscriber()
        bad = BrokenSubscriber(fail_after=1)
        await hub.register(good)
        await hub.register(bad)
        assert len(hub) == 2

        delivered = await hub.broadcast(EventType.FEED_ACTIVITY, {"action": "started"})
        assert delivered == 1
        assert bad not in hub
        assert good in hub
        assert good.frames[-1]["payload"] == {"action": "started"}

        # Later events still reach the survivor
        assert await hub.broadcast(EventType.STATS_UPDATE, {}) == 1

    @pytest.mark.asyncio
    async def test_slow_subscriber_times_out(self):
        hub = BroadcastHub(send_timeout=0.05)
        fast = FakeSubscriber()
        await hub.register(fast)
        slow = SlowSubscriber()
        hub._subscribers.add(slow)

        delivered = await hub.broadcast(EventType.AGENTS_REFRESH)
        assert delivered == 1
        assert slow not in hub

    @pytest.mark.asyncio
    async def test_unregister_and_close(self):
        hub = BroadcastHub()
        a, b = FakeSubscriber(), FakeSubscriber()
        await hub.register(a)
        await hub.register(b)
        hub.unregister(a)
        hub.unregister(a)
        assert len(hub) == 1
        hub.close()
        assert len(hub) == 0
