"""Mission Sync - live dashboard feed over a directory of mission documents.

Created: 2026-02-14

Agents and humans keep missions as Markdown files. Mission Sync watches
those files and pushes every meaningful change to connected viewers:

- Mission documents with a YAML header (legacy free-text ones still parse)
- Debounced file watching (one change per burst of writes)
- Status transition detection with automatic archival of done missions
- Bounded activity feed with relative timestamps
- Agent liveness from WORKING.md markers and an optional state file
- Periodic stats and a WebSocket fan-out hub

Usage:
    from missionsync import get_sync_engine

    engine = get_sync_engine()
    await engine.start()

    # Create a mission from the dashboard
    mission = await engine.create_mission(
        title="Research competitors",
        assigned_to="scout",
        priority="high",
    )

    # Read the board and the feed
    board = await engine.get_board()
    feed = engine.get_feed(limit=10)

    await engine.close()
"""

# Models
# Engine
from missionsync.engine import (
    ArchivalError,
    MissionNotFoundError,
    MissionSyncEngine,
    MissionSyncError,
    get_sync_engine,
    reset_sync_engine,
)
from missionsync.models import (
    ActivityEvent,
    ActivityTargetType,
    AgentLiveness,
    AgentSnapshot,
    EventEnvelope,
    EventType,
    Mission,
    MissionPriority,
    MissionStatus,
)

__all__ = [
    # Models
    "Mission",
    "MissionStatus",
    "MissionPriority",
    "ActivityEvent",
    "ActivityTargetType",
    "AgentLiveness",
    "AgentSnapshot",
    "EventEnvelope",
    "EventType",
    # Engine
    "MissionSyncEngine",
    "MissionSyncError",
    "MissionNotFoundError",
    "ArchivalError",
    "get_sync_engine",
    "reset_sync_engine",
]
