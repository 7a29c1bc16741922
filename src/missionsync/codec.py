"""Mission document codec.

Created: 2026-02-14

Mission documents are markdown files, optionally led by a YAML header:

    ---
    id: unique-id
    title: Task title
    assigned_to: forge
    status: queue | in_progress | review | done
    priority: critical | high | medium | low
    created_at: ISO date
    updated_at: ISO date
    tags:
      - tag1
    ---

    # Task title

    ## Description
    Task description here...

Older documents have no header at all; their fields are recovered from the
markdown with heuristics. parse_document() returns one of two variants,
StructuredDocument or LegacyDocument, and to_mission() handles each one
explicitly. Neither function raises on malformed input.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import PurePath
from typing import Any

import yaml

from missionsync.models import Mission, MissionPriority, MissionStatus, now_iso

logger = logging.getLogger(__name__)

ID_MAX_LENGTH = 50
TITLE_MAX_LENGTH = 80
DESCRIPTION_MAX_LENGTH = 100

HEADER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n(.*))?\Z", re.DOTALL)
HEADING_PATTERN = re.compile(r"^#(?!#)\s*(.+)$", re.MULTILINE)
TITLE_PREFIX_PATTERN = re.compile(r"^(?:FORGE|Task|Mission):\s*", re.IGNORECASE)
STATUS_LINE_PATTERN = re.compile(r"\*{0,2}Status:\*{0,2}\s*(.+)", re.IGNORECASE)
PRIORITY_LINE_PATTERN = re.compile(r"Priority:\**\s*(\w+)", re.IGNORECASE)
ASSIGNEE_LINE_PATTERN = re.compile(
    r"(?:Assigned(?:\s+to)?|Assignee|Agent|From):\**\s*(\w+)", re.IGNORECASE
)
FILENAME_AGENT_PATTERN = re.compile(r"^([A-Za-z0-9]+)-")
OBJECTIVE_PATTERN = re.compile(r"^##\s*Objective\s*\n+(.+)", re.IGNORECASE | re.MULTILINE)
DESCRIPTION_PATTERN = re.compile(r"^##\s*Description\s*\n+(.+)", re.IGNORECASE | re.MULTILINE)
PARAGRAPH_PATTERN = re.compile(r"\n\n([^#\n].{10,100})")

COMPLETION_GLYPH = "✅"

# Filename prefixes that are not agent names
_GENERIC_PREFIXES = {"task", "mission"}

STATUS_MAP = {
    "queue": MissionStatus.QUEUE,
    "queued": MissionStatus.QUEUE,
    "todo": MissionStatus.QUEUE,
    "inbox": MissionStatus.QUEUE,
    "blocked": MissionStatus.QUEUE,
    "in_progress": MissionStatus.PROGRESS,
    "progress": MissionStatus.PROGRESS,
    "working": MissionStatus.PROGRESS,
    "review": MissionStatus.REVIEW,
    "reviewing": MissionStatus.REVIEW,
    "done": MissionStatus.DONE,
    "complete": MissionStatus.DONE,
    "completed": MissionStatus.DONE,
}

PRIORITY_MAP = {
    "critical": MissionPriority.CRITICAL,
    "crit": MissionPriority.CRITICAL,
    "urgent": MissionPriority.CRITICAL,
    "high": MissionPriority.HIGH,
    "important": MissionPriority.HIGH,
    "medium": MissionPriority.MEDIUM,
    "normal": MissionPriority.MEDIUM,
    "low": MissionPriority.LOW,
    "minor": MissionPriority.LOW,
}

# Header keys owned by the codec; everything else is carried through untouched
CANONICAL_KEYS = (
    "id",
    "title",
    "assigned_to",
    "status",
    "priority",
    "created_at",
    "updated_at",
    "tags",
)


# ============================================================================
# Document variants
# ============================================================================


@dataclass
class StructuredDocument:
    """A document with a parseable YAML header."""

    header: dict[str, Any]
    body: str

    @property
    def has_header(self) -> bool:
        return True


@dataclass
class LegacyDocument:
    """A header-less document; the whole text is the body."""

    body: str
    header: dict[str, Any] = field(default_factory=dict)

    @property
    def has_header(self) -> bool:
        return False


ParsedDocument = StructuredDocument | LegacyDocument


# ============================================================================
# Normalization helpers
# ============================================================================


def slugify(text: str) -> str:
    """Lowercase, dash-separated, at most 50 characters."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:ID_MAX_LENGTH].rstrip("-")


def normalize_status(value: Any) -> MissionStatus:
    if isinstance(value, MissionStatus):
        return value
    if not value:
        return MissionStatus.QUEUE
    key = re.sub(r"[\s-]+", "_", str(value).strip().lower())
    return STATUS_MAP.get(key, MissionStatus.QUEUE)


def normalize_priority(value: Any) -> MissionPriority:
    if isinstance(value, MissionPriority):
        return value
    if not value:
        return MissionPriority.MEDIUM
    return PRIORITY_MAP.get(str(value).strip().lower(), MissionPriority.MEDIUM)


def normalize_agent(value: Any) -> str | None:
    """Uppercase agent id; empty or 'unassigned' means nobody."""
    if value is None:
        return None
    agent = str(value).strip()
    if not agent or agent.lower() == "unassigned":
        return None
    return agent.upper()


def is_blocked_status(value: Any) -> bool:
    return bool(value) and str(value).strip().lower() == "blocked"


def _coerce_timestamp(value: Any) -> str:
    # YAML turns unquoted ISO dates into datetime/date objects
    if isinstance(value, datetime | date):
        return value.isoformat()
    if value:
        return str(value)
    return now_iso()


def _coerce_tags(value: Any) -> list[str]:
    if isinstance(value, str):
        raw = value.split(",")
    elif isinstance(value, list | tuple | set):
        raw = list(value)
    else:
        return []
    return _dedupe(str(tag).strip() for tag in raw if tag is not None and str(tag).strip())


def _dedupe(tags) -> list[str]:
    seen: dict[str, None] = {}
    for tag in tags:
        seen.setdefault(tag, None)
    return list(seen)


def _stem(storage_key: str) -> str:
    return PurePath(storage_key).stem if storage_key else ""


def _fallback_id(title: str, storage_key: str) -> str:
    return slugify(title) or _stem(storage_key)[:ID_MAX_LENGTH] or "mission"


def extract_title(text: str) -> str | None:
    """First top-level heading, minus Task:/Mission: style prefixes."""
    match = HEADING_PATTERN.search(text)
    if not match:
        return None
    title = TITLE_PREFIX_PATTERN.sub("", match.group(1).strip()).strip()
    return title or None


def extract_description(text: str) -> str:
    """Objective or Description section, else the first eligible paragraph."""
    for pattern in (OBJECTIVE_PATTERN, DESCRIPTION_PATTERN):
        match = pattern.search(text)
        if match:
            return match.group(1).strip()[:DESCRIPTION_MAX_LENGTH]
    match = PARAGRAPH_PATTERN.search(text)
    return match.group(1).strip()[:DESCRIPTION_MAX_LENGTH] if match else ""


# ============================================================================
# Parse
# ============================================================================


def parse_document(raw: str) -> ParsedDocument:
    """Split a raw document into header and body.

    Malformed or empty headers degrade to a LegacyDocument over the full
    text instead of failing.
    """
    match = HEADER_PATTERN.match(raw)
    if not match:
        return LegacyDocument(body=raw)

    try:
        header = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning("Failed to parse YAML header: %s", e)
        return LegacyDocument(body=raw)

    if not isinstance(header, dict) or not header:
        return LegacyDocument(body=raw)

    return StructuredDocument(
        header={str(key): value for key, value in header.items()},
        body=match.group(2) or "",
    )


def to_mission(document: ParsedDocument, storage_key: str) -> Mission:
    """Normalize either document variant into a Mission."""
    if isinstance(document, StructuredDocument):
        return _structured_to_mission(document, storage_key)
    return _legacy_to_mission(document, storage_key)


def parse_mission(raw: str, storage_key: str) -> Mission:
    """Shortcut for to_mission(parse_document(raw), storage_key)."""
    return to_mission(parse_document(raw), storage_key)


def _structured_to_mission(document: StructuredDocument, storage_key: str) -> Mission:
    header = document.header
    title = str(header.get("title") or "").strip()
    if not title:
        title = extract_title(document.body) or _stem(storage_key)
    title = title[:TITLE_MAX_LENGTH]

    mission_id = str(header.get("id") or "").strip()[:ID_MAX_LENGTH]
    if not mission_id:
        mission_id = _fallback_id(title, storage_key)

    raw_status = header.get("status")
    tags = _coerce_tags(header.get("tags"))
    if is_blocked_status(raw_status):
        tags = _dedupe([*tags, "blocked"])

    return Mission(
        id=mission_id,
        title=title,
        description=extract_description(document.body),
        assigned_to=normalize_agent(header.get("assigned_to")),
        status=normalize_status(raw_status),
        priority=normalize_priority(header.get("priority")),
        tags=tags,
        created_at=_coerce_timestamp(header.get("created_at")),
        updated_at=_coerce_timestamp(header.get("updated_at")),
        storage_key=storage_key,
        has_structured_header=True,
    )


def _legacy_status(text: str) -> tuple[MissionStatus, bool]:
    """Return (status, blocked) from a Status: line and keyword heuristics."""
    match = STATUS_LINE_PATTERN.search(text)
    line = match.group(1).lstrip("* ").strip() if match else ""
    lowered = line.lower()

    # Finished work still sitting in the active area waits for review
    if COMPLETION_GLYPH in line or "complete" in lowered:
        return MissionStatus.REVIEW, False
    if "progress" in lowered or "working" in lowered or "in progress" in text.lower():
        return MissionStatus.PROGRESS, False
    if "blocked" in lowered or "waiting" in lowered:
        return MissionStatus.QUEUE, True
    if "review" in lowered:
        return MissionStatus.REVIEW, False
    return MissionStatus.QUEUE, False


def _legacy_assignee(text: str, storage_key: str) -> str | None:
    match = ASSIGNEE_LINE_PATTERN.search(text)
    if match:
        return normalize_agent(match.group(1))
    match = FILENAME_AGENT_PATTERN.match(PurePath(storage_key).name if storage_key else "")
    if match and match.group(1).lower() not in _GENERIC_PREFIXES:
        return normalize_agent(match.group(1))
    return None


def _legacy_to_mission(document: LegacyDocument, storage_key: str) -> Mission:
    text = document.body
    title = (extract_title(text) or _stem(storage_key))[:TITLE_MAX_LENGTH]
    status, blocked = _legacy_status(text)

    priority_match = PRIORITY_LINE_PATTERN.search(text)
    priority = normalize_priority(priority_match.group(1) if priority_match else None)

    tags = []
    if priority in (MissionPriority.CRITICAL, MissionPriority.HIGH):
        tags.append("urgent")
    if blocked or "blocked" in text.lower():
        tags.append("blocked")

    return Mission(
        id=_fallback_id(title, storage_key),
        title=title,
        description=extract_description(text),
        assigned_to=_legacy_assignee(text, storage_key),
        status=status,
        priority=priority,
        tags=tags,
        storage_key=storage_key,
        has_structured_header=False,
    )


# ============================================================================
# Serialize
# ============================================================================


def compose_body(mission: Mission) -> str:
    description = mission.description or "No description provided."
    return f"# {mission.title}\n\n## Description\n{description}\n"


def build_header(
    mission: Mission, updated_at: str | None = None, extra: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Header mapping for a mission, canonical keys first."""
    header: dict[str, Any] = {
        "id": mission.id,
        "title": mission.title,
        "assigned_to": mission.assigned_to.lower() if mission.assigned_to else "unassigned",
        "status": mission.status.value,
        "priority": mission.priority.value,
        "created_at": mission.created_at or now_iso(),
        "updated_at": updated_at or now_iso(),
    }
    if mission.tags:
        header["tags"] = list(mission.tags)
    for key, value in (extra or {}).items():
        if key not in CANONICAL_KEYS:
            header[key] = value
    return header


def serialize(
    mission: Mission,
    body: str | None = None,
    extra: dict[str, Any] | None = None,
    updated_at: str | None = None,
) -> str:
    """Render a mission as a document with a YAML header.

    ``body`` defaults to a freshly composed one. ``extra`` header keys
    (e.g. created_by) are preserved after the canonical ones.
    """
    header = build_header(mission, updated_at=updated_at, extra=extra)
    dumped = yaml.safe_dump(header, sort_keys=False, allow_unicode=True, default_flow_style=False)
    if body is None:
        body = compose_body(mission)
    return f"---\n{dumped}---\n\n" + body.lstrip("\n")


def restamp(raw: str, storage_key: str, **updates: Any) -> tuple[Mission, str]:
    """Re-encode an existing document with field updates.

    The body and any non-canonical header keys are kept. Returns the
    updated mission and the new document text.
    """
    document = parse_document(raw)
    mission = to_mission(document, storage_key)

    for name, value in updates.items():
        if name == "status":
            value = normalize_status(value)
        elif name == "priority":
            value = normalize_priority(value)
        elif name == "assigned_to":
            value = normalize_agent(value)
        setattr(mission, name, value)

    stamp = now_iso()
    mission.updated_at = stamp
    mission.has_structured_header = True
    text = serialize(mission, body=document.body, extra=document.header, updated_at=stamp)
    return mission, text
