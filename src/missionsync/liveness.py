"""Agent liveness derived from marker documents.

Created: 2026-02-14

Each agent keeps a ``memory/{agent}/WORKING.md`` file that it rewrites as
it works. The age of that file is the liveness signal:

    < working_minutes  -> working
    < standby_minutes  -> standby
    otherwise          -> offline

An optional ``dashboard/state.json`` can report a status per agent
(``{"agents": {"forge": {"status": "active", "currentTask": "..."}}}``).
It wins over the marker age when it is at least as fresh as the marker.

Any read failure makes that one agent offline; it never aborts a listing.
"""

import json
import logging
import re
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from missionsync.config import Settings
from missionsync.models import LIVENESS_ORDER, AgentLiveness, AgentSnapshot

logger = logging.getLogger(__name__)

CURRENT_TASK_PATTERN = re.compile(r"(?:Current(?:\s+Task)?|Status):\s*(.+)", re.IGNORECASE)
CURRENT_TASK_MAX_LENGTH = 60

_STATE_STATUS_MAP = {
    "active": AgentLiveness.WORKING,
    "working": AgentLiveness.WORKING,
    "blocked": AgentLiveness.BLOCKED,
    "idle": AgentLiveness.STANDBY,
    "standby": AgentLiveness.STANDBY,
}


def bucket_by_age(
    age_seconds: float, working_minutes: float = 5.0, standby_minutes: float = 30.0
) -> AgentLiveness:
    """Map marker age to a liveness bucket."""
    minutes = age_seconds / 60
    if minutes < working_minutes:
        return AgentLiveness.WORKING
    if minutes < standby_minutes:
        return AgentLiveness.STANDBY
    return AgentLiveness.OFFLINE


class LivenessProbe:
    """Reads agent markers and the optional state file."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def known_agents(self) -> list[str]:
        """Configured agents, or every subdirectory of the memory dir."""
        if self.settings.agents:
            return [a.lower() for a in self.settings.agents]
        try:
            return sorted(
                p.name.lower()
                for p in self.settings.memory_path.iterdir()
                if p.is_dir() and not p.name.startswith(".")
            )
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Error listing agents in %s: %s", self.settings.memory_path, e)
            return []

    def agent_from_path(self, path: Path) -> str | None:
        """Agent id for a marker path, or None if it isn't one."""
        if path.name != self.settings.marker_filename:
            return None
        try:
            relative = path.relative_to(self.settings.memory_path)
        except ValueError:
            return None
        if len(relative.parts) != 2:
            return None
        return relative.parts[0].lower()

    def read_state(self) -> dict[str, Any]:
        """Per-agent entries from the state file ({} if absent or broken)."""
        try:
            data = json.loads(self.settings.state_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Error reading %s: %s", self.settings.state_path, e)
            return {}
        agents = data.get("agents") if isinstance(data, dict) else None
        if not isinstance(agents, dict):
            return {}
        return {str(k).lower(): v for k, v in agents.items() if isinstance(v, dict)}

    def _state_mtime(self) -> float | None:
        try:
            return self.settings.state_path.stat().st_mtime
        except OSError:
            return None

    def _marker_mtime(self, agent_id: str) -> float | None:
        try:
            return self.settings.marker_path(agent_id).stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Error checking status for %s: %s", agent_id, e)
            return None

    def liveness(self, agent_id: str, now: float | None = None) -> AgentLiveness:
        mtime = self._marker_mtime(agent_id)
        return self._liveness(agent_id, mtime, time.time() if now is None else now)

    def _liveness(self, agent_id: str, mtime: float | None, now: float) -> AgentLiveness:
        if mtime is None:
            return AgentLiveness.OFFLINE

        state_mtime = self._state_mtime()
        if state_mtime is not None and state_mtime >= mtime:
            entry = self.read_state().get(agent_id.lower())
            if entry:
                override = _STATE_STATUS_MAP.get(str(entry.get("status", "")).lower())
                if override:
                    return override

        return bucket_by_age(
            now - mtime,
            working_minutes=self.settings.working_minutes,
            standby_minutes=self.settings.standby_minutes,
        )

    def current_task(self, agent_id: str) -> str | None:
        """State file currentTask, else the marker's Current/Status line."""
        entry = self.read_state().get(agent_id.lower())
        if entry and entry.get("currentTask"):
            return str(entry["currentTask"])

        try:
            content = self.settings.marker_path(agent_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading task for %s: %s", agent_id, e)
            return None
        match = CURRENT_TASK_PATTERN.search(content)
        return match.group(1).strip()[:CURRENT_TASK_MAX_LENGTH] if match else None

    def snapshot(self, agent_id: str, now: float | None = None) -> AgentSnapshot:
        agent_id = agent_id.lower()
        mtime = self._marker_mtime(agent_id)
        return AgentSnapshot(
            id=agent_id,
            status=self._liveness(agent_id, mtime, time.time() if now is None else now),
            current_task=self.current_task(agent_id),
            last_seen=datetime.fromtimestamp(mtime, UTC).isoformat() if mtime else None,
        )

    def snapshots(self, now: float | None = None) -> list[AgentSnapshot]:
        """All known agents: working first, then blocked, standby, offline."""
        agents = [self.snapshot(agent_id, now) for agent_id in self.known_agents()]
        agents.sort(key=lambda a: (LIVENESS_ORDER[a.status], a.id))
        return agents

    def count_working(self, now: float | None = None) -> tuple[int, int]:
        """Return (working, total) across known agents."""
        agents = self.known_agents()
        working = sum(1 for a in agents if self.liveness(a, now) == AgentLiveness.WORKING)
        return working, len(agents)
