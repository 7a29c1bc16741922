"""In-memory mission cache.

Created: 2026-02-14

Holds the last observed state of every mission in the active area, keyed
by storage key (the document filename). This is what incoming changes are
diffed against. Writers for different keys may interleave; a single lock
keeps the map consistent.
"""

import asyncio
import logging

from missionsync.models import Mission, MissionStatus

logger = logging.getLogger(__name__)


class MissionCache:
    """Storage key -> Mission map guarded by an asyncio.Lock."""

    def __init__(self):
        self._missions: dict[str, Mission] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, storage_key: str, mission: Mission) -> Mission | None:
        """Store a mission, returning the previously cached one (if any)."""
        async with self._lock:
            previous = self._missions.get(storage_key)
            self._missions[storage_key] = mission
            return previous

    async def get(self, storage_key: str) -> Mission | None:
        async with self._lock:
            return self._missions.get(storage_key)

    async def remove(self, storage_key: str) -> Mission | None:
        """Evict a mission, returning it if it was cached."""
        async with self._lock:
            return self._missions.pop(storage_key, None)

    async def snapshot(self, status: MissionStatus | None = None) -> list[Mission]:
        """Copy of the cached missions, most recently updated first."""
        async with self._lock:
            missions = list(self._missions.values())
        if status:
            missions = [m for m in missions if m.status == status]
        missions.sort(key=lambda m: m.updated_at, reverse=True)
        return missions

    async def keys(self) -> set[str]:
        async with self._lock:
            return set(self._missions)

    async def clear(self) -> None:
        async with self._lock:
            self._missions.clear()

    def __len__(self) -> int:
        return len(self._missions)

    def __contains__(self, storage_key: str) -> bool:
        return storage_key in self._missions
