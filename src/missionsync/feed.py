"""Bounded activity feed.

Created: 2026-02-14

Newest-first log of classified events. Used for live push (each append is
also broadcast by the engine) and for cold-start replay when a viewer
loads the page. Relative times ("5m ago") are computed when the feed is
read, never stored, so an old snapshot still renders correctly.
"""

import logging
from collections import deque
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from missionsync.models import ActivityEvent, generate_id, now_iso, parse_iso

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


def relative_time(timestamp: str, now: datetime | None = None) -> str:
    """Human-relative age of an ISO timestamp."""
    then = parse_iso(timestamp)
    if then is None:
        return "recently"
    now = now or datetime.now(UTC)
    seconds = max(0.0, (now - then).total_seconds())
    minutes = int(seconds // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


class ActivityFeed:
    """Fixed-capacity, newest-first activity log."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("Feed capacity must be at least 1")
        self._capacity = capacity
        # appendleft + maxlen drops the oldest entry from the right
        self._events: deque[ActivityEvent] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, event: ActivityEvent) -> ActivityEvent:
        """Add an event, assigning id/timestamp when missing.

        Returns the stored event.
        """
        if not event.id or not event.timestamp:
            event = replace(
                event,
                id=event.id or generate_id(),
                timestamp=event.timestamp or now_iso(),
            )
        self._events.appendleft(event)
        return event

    def replay(self, limit: int | None = None, now: datetime | None = None) -> list[dict[str, Any]]:
        """Most recent ``limit`` events, newest first, with a ``time`` label."""
        events = list(self._events)
        if limit is not None:
            events = events[: max(0, limit)]
        result = []
        for event in events:
            data = event.to_dict()
            data["time"] = relative_time(event.timestamp, now)
            result.append(data)
        return result

    def events(self) -> list[ActivityEvent]:
        """Raw events, newest first."""
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
