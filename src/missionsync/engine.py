"""Mission sync engine.

Created: 2026-02-14

Owns every piece of mutable state (cache, feed, subscribers, timers) and
runs the change pipeline:

    watcher (debounced) -> codec -> cache diff -> classify (+ archive)
        -> feed -> hub

It also serves the read contract used by request-driven handlers
(list_active_missions, list_archived_missions, get_feed,
get_agent_liveness) and the two commands the dashboard issues directly
(create_mission, complete_mission).

Usage:
    from missionsync.engine import get_sync_engine

    engine = get_sync_engine()
    await engine.start()
    ...
    await engine.close()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from missionsync import lifecycle
from missionsync.aggregator import PeriodicAggregator
from missionsync.cache import MissionCache
from missionsync.codec import (
    TITLE_MAX_LENGTH,
    compose_body,
    extract_description,
    is_blocked_status,
    normalize_agent,
    normalize_priority,
    normalize_status,
    parse_mission,
    restamp,
    serialize,
    slugify,
)
from missionsync.config import Settings, get_settings
from missionsync.feed import ActivityFeed
from missionsync.hub import BroadcastHub, Subscriber
from missionsync.liveness import LivenessProbe
from missionsync.models import (
    HUMAN_AGENT,
    SYSTEM_AGENT,
    ActivityEvent,
    ActivityTargetType,
    AgentLiveness,
    AgentSnapshot,
    EventType,
    Mission,
    MissionStatus,
    generate_id,
    now_iso,
)
from missionsync.transitions import classify, should_auto_archive
from missionsync.watcher import Change, ChangeKind, ChangeWatcher, PathCategory

logger = logging.getLogger(__name__)

FEED_TARGET_MAX_LENGTH = 40
COMPLETION_HEADING = "## Completed"


class MissionSyncError(Exception):
    """Base class for engine errors."""


class MissionNotFoundError(MissionSyncError):
    """No active mission document with that storage key."""


class ArchivalError(MissionSyncError):
    """Moving a document into the archive area failed."""


def _storage_key(key: str) -> str:
    name = Path(key).name
    return name if name.endswith(".md") else f"{name}.md"


class MissionSyncEngine:
    """Watches mission documents and republishes changes to subscribers.

    Args:
        settings: Paths and tuning. Defaults to get_settings().
        watch: Start a watchdog observer. Tests drive the pipeline with
            handle_change() instead.
    """

    def __init__(self, settings: Settings | None = None, watch: bool = True):
        self.settings = settings or get_settings()
        self.cache = MissionCache()
        self.feed = ActivityFeed(self.settings.feed_capacity)
        self.hub = BroadcastHub(send_timeout=self.settings.send_timeout_seconds)
        self.probe = LivenessProbe(self.settings)
        self.aggregator = PeriodicAggregator(self.settings, self.hub, self.probe)
        self.watcher = ChangeWatcher(
            self.settings,
            self.handle_change,
            **({} if watch else {"observer_factory": None}),
        )
        # Filesystem echoes of moves and writes the engine made itself
        self._own_moves: dict[str, set[PathCategory]] = {}
        self._own_writes: set[str] = set()
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Prime the cache, then start watching and the stats timer."""
        if self._started:
            return
        self.settings.active_path.mkdir(parents=True, exist_ok=True)
        self.settings.archive_path.mkdir(parents=True, exist_ok=True)
        loaded = await self.load_active()
        await self.watcher.start()
        await self.aggregator.start()
        self._started = True
        logger.info(
            "Mission sync started: %d active missions in %s", loaded, self.settings.root_path
        )

    async def close(self) -> None:
        """Stop watching, cancel timers and drop subscribers."""
        await self.watcher.stop()
        await self.aggregator.stop()
        self.hub.close()
        self._own_moves.clear()
        self._own_writes.clear()
        self._started = False
        logger.info("Mission sync stopped")

    async def load_active(self) -> int:
        """Read every active document into the cache without emitting events."""
        count = 0
        for path in sorted(self.settings.active_path.glob("*.md")):
            mission = self._read_mission(path)
            if mission is None:
                continue
            await self.cache.upsert(path.name, mission)
            count += 1
        return count

    # =========================================================================
    # Subscribers
    # =========================================================================

    async def connect(self, subscriber: Subscriber) -> bool:
        return await self.hub.register(subscriber)

    def disconnect(self, subscriber: Subscriber) -> None:
        self.hub.unregister(subscriber)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def handle_change(self, change: Change) -> None:
        """Route one debounced change to its handler."""
        if change.category == PathCategory.ACTIVE_MISSION:
            if change.kind == ChangeKind.REMOVED:
                await self._on_active_removed(change.path)
            else:
                await self._on_active_written(change.path, change.kind)
        elif change.category == PathCategory.ARCHIVED_MISSION:
            if change.kind != ChangeKind.REMOVED:
                await self._on_archive_written(change.path)
        elif change.category == PathCategory.AGENT_MARKER:
            if change.kind != ChangeKind.REMOVED:
                await self._on_marker_written(change.path)
        elif change.category == PathCategory.AGENT_STATE:
            await self.hub.broadcast(EventType.AGENTS_REFRESH)

    def _read_mission(self, path: Path, archived: bool = False) -> Mission | None:
        """Parse a document; None when it vanished or can't be read."""
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            # Raced a delete or rename; the next event reconciles
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading mission %s: %s", path.name, e)
            return None
        mission = parse_mission(raw, path.name)
        mission.archived = archived
        return mission

    async def _on_active_written(self, path: Path, kind: ChangeKind) -> None:
        mission = self._read_mission(path)
        if mission is None:
            return

        key = path.name
        previous = await self.cache.upsert(key, mission)
        own_write = key in self._own_writes
        self._own_writes.discard(key)

        if previous is None:
            if kind == ChangeKind.ADDED:
                await self._record(
                    mission.assigned_to or SYSTEM_AGENT, "created", mission.title, mission.status
                )
                await self.hub.broadcast(EventType.MISSION_NEW, mission.to_dict())
            else:
                await self.hub.broadcast(EventType.MISSION_UPDATE, mission.to_dict())
            return

        if own_write and (previous.status, previous.assigned_to) == (
            mission.status,
            mission.assigned_to,
        ):
            return

        action = classify(
            previous.status, mission.status, previous.assigned_to, mission.assigned_to
        )
        if action:
            await self._record(
                mission.assigned_to or SYSTEM_AGENT, action, mission.title, mission.status
            )

        if should_auto_archive(previous.status, mission.status):
            try:
                await self._archive(path, mission)
            except ArchivalError as e:
                logger.error("Auto-archive of %s failed: %s", key, e)
            else:
                return

        await self.hub.broadcast(EventType.MISSION_UPDATE, mission.to_dict())

    async def _on_active_removed(self, path: Path) -> None:
        key = path.name
        self._own_writes.discard(key)
        if self._consume_own_move(key, PathCategory.ACTIVE_MISSION):
            return
        removed = await self.cache.remove(key)
        if removed is not None:
            logger.info("Mission removed: %s", key)
        await self.hub.broadcast(EventType.MISSION_REMOVED, {"id": key, "storage_key": key})

    async def _on_archive_written(self, path: Path) -> None:
        key = path.name
        if self._consume_own_move(key, PathCategory.ARCHIVED_MISSION):
            return
        if (self.settings.active_path / key).exists():
            logger.debug("Archive copy of %s while still active; keeping it cached", key)
            return
        mission = self._read_mission(path, archived=True)
        if mission is None:
            return
        # Archived records are read-only and leave the transition cache
        await self.cache.remove(key)
        await self.hub.broadcast(
            EventType.MISSION_COMPLETE,
            {"id": key, "storage_key": key, "mission": mission.to_dict()},
        )

    async def _on_marker_written(self, path: Path) -> None:
        agent_id = self.probe.agent_from_path(path)
        if agent_id is None:
            return
        snapshot = self.probe.snapshot(agent_id)
        await self.hub.broadcast(EventType.AGENT_STATUS, snapshot.to_dict())
        await self._record(
            snapshot.name,
            "is working" if snapshot.status == AgentLiveness.WORKING else "updated",
            snapshot.current_task or "status",
            target_type=ActivityTargetType.STATUS,
        )

    # =========================================================================
    # Archival
    # =========================================================================

    async def _archive(self, path: Path, mission: Mission) -> Mission:
        """Move a completed mission into the archive area and evict it.

        Raises ArchivalError on failure; the caller keeps the cached status.
        """
        key = path.name
        destination = self.settings.archive_path / key
        copied = False
        try:
            raw = path.read_text(encoding="utf-8")
            archived, text = restamp(raw, key, status=MissionStatus.DONE)
            if COMPLETION_HEADING not in text:
                note = f"✅ Marked complete at {archived.updated_at}"
                text = text.rstrip("\n") + f"\n\n{COMPLETION_HEADING}\n{note}\n"
            self._own_moves[key] = {PathCategory.ACTIVE_MISSION, PathCategory.ARCHIVED_MISSION}
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(text, encoding="utf-8")
            copied = True
            path.unlink()
        except (OSError, UnicodeDecodeError) as e:
            self._own_moves.pop(key, None)
            if copied:
                # The active file is still the source of truth
                try:
                    destination.unlink(missing_ok=True)
                except OSError as cleanup_error:
                    logger.warning(
                        "Could not remove partial archive copy %s: %s", destination, cleanup_error
                    )
            raise ArchivalError(f"Could not archive {key}: {e}") from e

        await self.cache.remove(key)
        archived.archived = True
        archived.description = archived.description or mission.description
        logger.info("Archived mission %s -> %s", key, destination)

        await self.hub.broadcast(
            EventType.MISSION_COMPLETE,
            {"id": key, "storage_key": key, "mission": archived.to_dict()},
        )
        return archived

    def _consume_own_move(self, key: str, category: PathCategory) -> bool:
        pending = self._own_moves.get(key)
        if not pending or category not in pending:
            return False
        pending.discard(category)
        if not pending:
            del self._own_moves[key]
        return True

    # =========================================================================
    # Feed
    # =========================================================================

    async def _record(
        self,
        agent: str,
        action: str,
        target: str,
        status: MissionStatus | None = None,
        target_type: ActivityTargetType = ActivityTargetType.MISSION,
    ) -> ActivityEvent:
        """Append to the feed and push it live."""
        event = self.feed.append(
            ActivityEvent(
                agent=agent,
                action=action,
                target=target[:FEED_TARGET_MAX_LENGTH],
                target_type=target_type,
                status=status,
            )
        )
        payload = event.to_dict()
        payload["time"] = "just now"
        await self.hub.broadcast(EventType.FEED_ACTIVITY, payload)
        return event

    # =========================================================================
    # Read contract
    # =========================================================================

    async def list_active_missions(self, status: MissionStatus | None = None) -> list[Mission]:
        return await self.cache.snapshot(status)

    async def list_archived_missions(self, limit: int | None = None) -> list[Mission]:
        """Most recently archived missions first, parsed on demand."""
        limit = self.settings.archived_limit if limit is None else limit
        try:
            paths = [p for p in self.settings.archive_path.glob("*.md") if p.is_file()]
            paths.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        except OSError as e:
            logger.error("Error reading archived missions: %s", e)
            return []
        missions = []
        for path in paths[: max(0, limit)]:
            mission = self._read_mission(path, archived=True)
            if mission is not None:
                missions.append(mission)
        return missions

    def get_feed(self, limit: int = 30) -> list[dict[str, Any]]:
        return self.feed.replay(limit)

    def get_agent_liveness(self, agent_id: str) -> AgentSnapshot:
        return self.probe.snapshot(agent_id)

    def list_agents(self) -> list[AgentSnapshot]:
        return self.probe.snapshots()

    async def get_board(self) -> dict[str, list[dict[str, Any]]]:
        """Missions grouped by column; done comes from the archive."""
        board: dict[str, list[dict[str, Any]]] = {s.value: [] for s in MissionStatus}
        for mission in await self.list_active_missions():
            board[mission.status.value].append(mission.to_dict())
        for mission in await self.list_archived_missions():
            board[MissionStatus.DONE.value].append(mission.to_dict())
        return board

    def get_health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": now_iso(),
            "watching": self.watcher.running,
            "subscribers": len(self.hub),
            "active_missions": len(self.cache),
            "feed_events": len(self.feed),
            "root_path": str(self.settings.root_path),
        }

    # =========================================================================
    # Commands
    # =========================================================================

    async def create_mission(
        self,
        title: str,
        description: str = "",
        assigned_to: str | None = None,
        priority: str = "medium",
        status: str = "queue",
        tags: list[str] | None = None,
    ) -> Mission:
        """Write a new structured mission document into the active area.

        The file is named ``{agent}-{slug}.md`` (``task-{slug}.md`` when
        unassigned); a numeric suffix avoids clobbering an existing file.

        Raises:
            ValueError: If the title is blank.
        """
        title = (title or "").strip()
        if not title:
            raise ValueError("Title is required")

        slug = slugify(title) or "mission"
        prefix = slugify(assigned_to) if assigned_to else "task"
        key = self._free_key(f"{prefix or 'task'}-{slug}")

        mission_tags = [str(t) for t in (tags or [])]
        if is_blocked_status(status) and "blocked" not in mission_tags:
            mission_tags.append("blocked")

        mission = Mission(
            id=generate_id(),
            title=title[:TITLE_MAX_LENGTH],
            description=description.strip(),
            assigned_to=normalize_agent(assigned_to),
            status=normalize_status(status),
            priority=normalize_priority(priority),
            tags=mission_tags,
            storage_key=key,
            has_structured_header=True,
        )
        body = compose_body(mission)
        mission.description = extract_description(body)
        text = serialize(
            mission, body=body, extra={"created_by": "human"}, updated_at=mission.updated_at
        )

        path = self.settings.active_path / key
        path.parent.mkdir(parents=True, exist_ok=True)
        self._own_writes.add(key)
        try:
            path.write_text(text, encoding="utf-8")
        except OSError:
            self._own_writes.discard(key)
            raise

        await self.cache.upsert(key, mission)
        await self._record(HUMAN_AGENT, "created", title, mission.status)
        await self.hub.broadcast(EventType.MISSION_NEW, mission.to_dict())
        logger.info("Created mission: %s", key)
        return mission

    def _free_key(self, stem: str) -> str:
        key = f"{stem}.md"
        suffix = 2
        while (self.settings.active_path / key).exists():
            key = f"{stem}-{suffix}.md"
            suffix += 1
        return key

    async def complete_mission(self, key: str) -> Mission:
        """Archive an active mission on request.

        Raises:
            MissionNotFoundError: No such document in the active area.
            ArchivalError: The move failed.
        """
        key = _storage_key(key)
        path = self.settings.active_path / key
        mission = self._read_mission(path)
        if mission is None:
            raise MissionNotFoundError(key)

        archived = await self._archive(path, mission)
        await self._record(HUMAN_AGENT, "completed", archived.title, MissionStatus.DONE)
        return archived


# =========================================================================
# Factory Function
# =========================================================================

_engine_instance: MissionSyncEngine | None = None


def get_sync_engine(settings: Settings | None = None) -> MissionSyncEngine:
    """Get or create the engine singleton.

    Args:
        settings: Optional settings. Only used on first call.
    """
    global _engine_instance
    if _engine_instance is None:
        _engine_instance = MissionSyncEngine(settings)
        lifecycle.register(
            "sync_engine", shutdown=_engine_instance.close, reset=reset_sync_engine
        )
    return _engine_instance


def reset_sync_engine() -> None:
    """Reset the engine singleton (for testing)."""
    global _engine_instance
    _engine_instance = None
