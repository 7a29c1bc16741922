"""Mission sync data models.

Created: 2026-02-14

These models define the core data structures for:
- Missions (work items backed by one document each)
- Activity events (entries in the live feed)
- Agent snapshots (derived liveness of an agent)
- Event envelopes (what subscribers receive)

Design notes:
- Uses dataclasses with to_dict()/from_dict() like the rest of the package
- Timestamps are ISO 8601 strings for JSON serialization
- str enums so values serialize without conversion
- ActivityEvent is frozen; the feed only ever prepends and evicts
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# ============================================================================
# Enums
# ============================================================================


class MissionStatus(str, Enum):
    """Board column a mission sits in."""

    QUEUE = "queue"
    PROGRESS = "progress"
    REVIEW = "review"
    DONE = "done"


class MissionPriority(str, Enum):
    """Mission urgency."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AgentLiveness(str, Enum):
    """Derived agent status, bucketed from marker age."""

    WORKING = "working"
    BLOCKED = "blocked"
    STANDBY = "standby"
    OFFLINE = "offline"


class ActivityTargetType(str, Enum):
    """What an activity event refers to."""

    MISSION = "mission"
    STATUS = "status"


class EventType(str, Enum):
    """Envelope types pushed to subscribers."""

    CONNECTED = "connected"
    MISSION_NEW = "mission:new"
    MISSION_UPDATE = "mission:update"
    MISSION_COMPLETE = "mission:complete"
    MISSION_REMOVED = "mission:removed"
    AGENT_STATUS = "agent:status"
    FEED_ACTIVITY = "feed:activity"
    STATS_UPDATE = "stats:update"
    AGENTS_REFRESH = "agents:refresh"


SYSTEM_AGENT = "SYSTEM"
HUMAN_AGENT = "HUMAN"

# Sort order for agent listings
LIVENESS_ORDER = {
    AgentLiveness.WORKING: 0,
    AgentLiveness.BLOCKED: 1,
    AgentLiveness.STANDBY: 2,
    AgentLiveness.OFFLINE: 3,
}

# ============================================================================
# Helper Functions
# ============================================================================


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current UTC time as ISO 8601 string."""
    return datetime.now(UTC).isoformat()


def parse_iso(value: str) -> datetime | None:
    """Parse an ISO 8601 string, returning None if it isn't one."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# ============================================================================
# Data Models
# ============================================================================


@dataclass
class Mission:
    """
    A work item backed by one document in the mission directory.

    Attributes:
        id: Stable identifier (explicit, slugified title, or filename stem)
        title: Display title
        description: Short summary extracted from the body
        assigned_to: Uppercase agent id, or None when unassigned
        status: Board column
        priority: Urgency
        tags: Free-text labels, no duplicates
        created_at: When the mission was created
        updated_at: Last time the document was normalized
        storage_key: Filename within the active/archive directory
        has_structured_header: Parsed from a YAML header (vs. heuristics)
        archived: Read from the archive directory
    """

    id: str = ""
    title: str = ""
    description: str = ""
    assigned_to: str | None = None
    status: MissionStatus = MissionStatus.QUEUE
    priority: MissionPriority = MissionPriority.MEDIUM
    tags: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    storage_key: str = ""
    has_structured_header: bool = False
    archived: bool = False

    @property
    def is_blocked(self) -> bool:
        return "blocked" in self.tags

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "status": self.status.value,
            "priority": self.priority.value,
            "tags": list(self.tags),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "storage_key": self.storage_key,
            "has_structured_header": self.has_structured_header,
            "archived": self.archived,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mission":
        """Create from dictionary."""
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            assigned_to=data.get("assigned_to"),
            status=MissionStatus(data.get("status", "queue")),
            priority=MissionPriority(data.get("priority", "medium")),
            tags=list(data.get("tags", [])),
            created_at=data.get("created_at", now_iso()),
            updated_at=data.get("updated_at", now_iso()),
            storage_key=data.get("storage_key", ""),
            has_structured_header=data.get("has_structured_header", False),
            archived=data.get("archived", False),
        )


@dataclass(frozen=True)
class ActivityEvent:
    """
    An entry in the activity feed. Never mutated once appended.

    Attributes:
        id: Unique identifier, assigned by the feed when empty
        timestamp: ISO 8601, assigned by the feed when empty
        agent: Agent that caused it, or SYSTEM / HUMAN
        action: Classified label ("started", "completed", ...)
        target: Display string, usually the mission title
        target_type: mission or status
        status: Mission status at the time, if relevant
    """

    agent: str = SYSTEM_AGENT
    action: str = ""
    target: str = ""
    target_type: ActivityTargetType = ActivityTargetType.MISSION
    status: MissionStatus | None = None
    id: str = ""
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "agent": self.agent,
            "action": self.action,
            "target": self.target,
            "type": self.target_type.value,
            "status": self.status.value if self.status else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityEvent":
        """Create from dictionary."""
        status = data.get("status")
        return cls(
            id=data.get("id", ""),
            timestamp=data.get("timestamp", ""),
            agent=data.get("agent", SYSTEM_AGENT),
            action=data.get("action", ""),
            target=data.get("target", ""),
            target_type=ActivityTargetType(data.get("type", "mission")),
            status=MissionStatus(status) if status else None,
        )


@dataclass
class AgentSnapshot:
    """Point-in-time view of one agent."""

    id: str
    status: AgentLiveness = AgentLiveness.OFFLINE
    current_task: str | None = None
    last_seen: str | None = None

    @property
    def name(self) -> str:
        return self.id.upper()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "currentTask": self.current_task,
            "lastSeen": self.last_seen,
        }


@dataclass
class EventEnvelope:
    """Transport-agnostic message pushed to subscribers."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload}
