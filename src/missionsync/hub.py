"""Broadcast hub for live subscribers.

Created: 2026-02-14

Keeps the set of connected subscribers (WebSocket connections in
production) and pushes every event envelope to all of them. A subscriber
whose send fails or times out is dropped; delivery to the others goes on.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from missionsync.models import EventEnvelope, EventType, now_iso

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Anything that can receive a text frame (e.g. fastapi.WebSocket)."""

    async def send_text(self, data: str) -> None: ...


class BroadcastHub:
    """Fan-out publisher to all currently connected subscribers."""

    def __init__(self, send_timeout: float = 5.0):
        self._subscribers: set[Any] = set()
        self._send_timeout = send_timeout

    async def register(self, subscriber: Subscriber) -> bool:
        """Add a subscriber and acknowledge the handshake.

        Returns False (and does not register) if the acknowledgement
        cannot be delivered.
        """
        ack = json.dumps(
            EventEnvelope(EventType.CONNECTED, {"timestamp": now_iso()}).to_dict()
        )
        if not await self._send(subscriber, ack):
            return False
        self._subscribers.add(subscriber)
        logger.info("Subscriber connected (%d total)", len(self._subscribers))
        return True

    def unregister(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info("Subscriber disconnected (%d total)", len(self._subscribers))

    async def publish(self, envelope: EventEnvelope) -> int:
        """Send an envelope to every subscriber; returns how many got it."""
        subscribers = list(self._subscribers)
        if not subscribers:
            return 0

        message = json.dumps(envelope.to_dict())
        results = await asyncio.gather(*(self._send(s, message) for s in subscribers))

        delivered = 0
        for subscriber, ok in zip(subscribers, results, strict=True):
            if ok:
                delivered += 1
            else:
                self.unregister(subscriber)
        return delivered

    async def broadcast(self, event_type: EventType, payload: dict[str, Any] | None = None) -> int:
        """Shortcut for publish(EventEnvelope(event_type, payload))."""
        return await self.publish(EventEnvelope(event_type, payload or {}))

    async def _send(self, subscriber: Subscriber, message: str) -> bool:
        try:
            await asyncio.wait_for(subscriber.send_text(message), timeout=self._send_timeout)
            return True
        except TimeoutError:
            logger.warning("Subscriber send timed out after %.1fs", self._send_timeout)
        except Exception as e:
            logger.debug("Subscriber send failed: %s", e)
        return False

    def close(self) -> None:
        """Forget all subscribers."""
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers
