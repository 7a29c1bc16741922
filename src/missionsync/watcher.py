"""Filesystem change watcher with per-path debounce.

Created: 2026-02-14

watchdog delivers notifications on its observer thread. They are handed to
the event loop with call_soon_threadsafe onto an asyncio.Queue, and a single
pump task consumes that queue. Each relevant path gets a cancellable timer:
every raw notification cancels and replaces it, so a burst of writes to one
file produces exactly one logical change once the file has been quiet for
``debounce_seconds``.

Watched paths (relative to ``root_path``):
    mission-control/active/*.md
    mission-control/completed/*.md
    memory/*/WORKING.md
    dashboard/state.json
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from missionsync.config import Settings

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """Logical change kinds delivered to the pipeline."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class PathCategory(str, Enum):
    """Which part of the tree a path belongs to."""

    ACTIVE_MISSION = "active_mission"
    ARCHIVED_MISSION = "archived_mission"
    AGENT_MARKER = "agent_marker"
    AGENT_STATE = "agent_state"


@dataclass(frozen=True)
class Change:
    """One debounced change, ready for processing."""

    kind: ChangeKind
    path: Path
    category: PathCategory

    @property
    def storage_key(self) -> str:
        return self.path.name


ChangeHandler = Callable[[Change], Awaitable[None]]


def merge_kinds(previous: ChangeKind | None, latest: ChangeKind) -> ChangeKind:
    """Collapse two notifications for the same path into one kind.

    added + changed -> added; anything + removed -> removed;
    removed + added -> changed (the file was replaced).
    """
    if previous is None:
        return latest
    if latest == ChangeKind.REMOVED:
        return ChangeKind.REMOVED
    if previous == ChangeKind.ADDED:
        return ChangeKind.ADDED
    return ChangeKind.CHANGED


class Debouncer:
    """Per-key quiet-period timers; always cancel-and-replace."""

    def __init__(self, delay: float, callback: Callable[[Path, ChangeKind], None]):
        self.delay = delay
        self._callback = callback
        self._handles: dict[Path, asyncio.TimerHandle] = {}
        self._kinds: dict[Path, ChangeKind] = {}

    def touch(self, key: Path, kind: ChangeKind) -> None:
        """Re-arm the timer for ``key``. Must be called on the loop."""
        handle = self._handles.pop(key, None)
        if handle:
            handle.cancel()
        self._kinds[key] = merge_kinds(self._kinds.get(key), kind)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.delay, self._fire, key)

    def _fire(self, key: Path) -> None:
        self._handles.pop(key, None)
        kind = self._kinds.pop(key, None)
        if kind is not None:
            self._callback(key, kind)

    def cancel_all(self) -> int:
        """Cancel pending timers; returns how many were dropped."""
        count = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._kinds.clear()
        return count

    def __len__(self) -> int:
        return len(self._handles)


class _EventBridge(FileSystemEventHandler):
    """Translate watchdog callbacks into watcher notifications."""

    def __init__(self, watcher: ChangeWatcher):
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.notify(ChangeKind.ADDED, os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.notify(ChangeKind.CHANGED, os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.notify(ChangeKind.REMOVED, os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.notify(ChangeKind.REMOVED, os.fsdecode(event.src_path))
            self._watcher.notify(ChangeKind.ADDED, os.fsdecode(event.dest_path))


class ChangeWatcher:
    """Watches the document tree and feeds debounced changes to a handler.

    Args:
        settings: Paths and debounce window.
        handler: Async callable invoked once per debounced change.
        observer_factory: Builds the watchdog observer. Pass None to skip
            OS-level watching and drive the watcher through notify().
    """

    def __init__(
        self,
        settings: Settings,
        handler: ChangeHandler,
        observer_factory: Callable[[], object] | None = Observer,
    ):
        self.settings = settings
        self._handler = handler
        self._observer_factory = observer_factory
        self._observer = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[ChangeKind, Path]] | None = None
        self._pump_task: asyncio.Task | None = None
        self._debouncer = Debouncer(settings.debounce_seconds, self._dispatch)
        self._locks: dict[Path, asyncio.Lock] = {}
        self._lock_users: dict[Path, int] = {}
        self._inflight: set[asyncio.Task] = set()

        self._active = settings.active_path.resolve()
        self._archive = settings.archive_path.resolve()
        self._memory = settings.memory_path.resolve()
        self._state = settings.state_path.resolve()

    @property
    def running(self) -> bool:
        return self._pump_task is not None

    @property
    def pending(self) -> int:
        """Number of paths waiting out their quiet period."""
        return len(self._debouncer)

    def categorize(self, path: Path) -> PathCategory | None:
        """Which watched area a path is in, or None if it isn't watched."""
        path = Path(path).resolve()
        parent = path.parent
        if path.suffix == ".md" and parent == self._active:
            return PathCategory.ACTIVE_MISSION
        if path.suffix == ".md" and parent == self._archive:
            return PathCategory.ARCHIVED_MISSION
        if path.name == self.settings.marker_filename and parent.parent == self._memory:
            return PathCategory.AGENT_MARKER
        if path == self._state:
            return PathCategory.AGENT_STATE
        return None

    def watched_directories(self) -> list[tuple[Path, bool]]:
        """(directory, recursive) pairs to schedule on the observer."""
        dirs = [(self._active, False), (self._archive, False)]
        if self._memory.is_dir():
            dirs.append((self._memory, True))
        if self._state.parent.is_dir():
            dirs.append((self._state.parent, False))
        return dirs

    async def start(self) -> None:
        if self._pump_task:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._pump_task = asyncio.create_task(self._pump())

        if self._observer_factory is not None:
            self.settings.active_path.mkdir(parents=True, exist_ok=True)
            self.settings.archive_path.mkdir(parents=True, exist_ok=True)
            observer = self._observer_factory()
            bridge = _EventBridge(self)
            for directory, recursive in self.watched_directories():
                observer.schedule(bridge, str(directory), recursive=recursive)
            observer.start()
            self._observer = observer

        logger.info("Watching %s", ", ".join(str(d) for d, _ in self.watched_directories()))

    def notify(self, kind: ChangeKind, path: str | Path) -> None:
        """Report a raw notification. Safe to call from any thread."""
        if self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, (kind, Path(path)))
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug("Dropped %s notification for %s", kind.value, path)

    async def _pump(self) -> None:
        assert self._queue is not None
        while True:
            kind, path = await self._queue.get()
            if self.categorize(path) is None:
                continue
            self._debouncer.touch(path, kind)

    def _dispatch(self, path: Path, kind: ChangeKind) -> None:
        category = self.categorize(path)
        if category is None:
            return
        change = Change(kind=kind, path=path, category=category)
        task = asyncio.create_task(self._run(change))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run(self, change: Change) -> None:
        path = change.path
        lock = self._locks.setdefault(path, asyncio.Lock())
        self._lock_users[path] = self._lock_users.get(path, 0) + 1
        try:
            async with lock:
                logger.debug("%s %s", change.kind.value, path)
                try:
                    await self._handler(change)
                except Exception:
                    logger.exception("Error handling %s of %s", change.kind.value, path)
        finally:
            # Drop the lock once no handler holds or awaits it
            self._lock_users[path] -= 1
            if not self._lock_users[path]:
                del self._lock_users[path]
                self._locks.pop(path, None)

    async def drain(self) -> None:
        """Wait for every in-flight handler to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)
            self._observer = None

        if self._pump_task:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None

        dropped = self._debouncer.cancel_all()
        if dropped:
            logger.debug("Cancelled %d pending debounce timers", dropped)
        await self.drain()
        self._loop = None
        self._queue = None
        logger.info("Watcher stopped")
