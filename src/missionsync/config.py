"""Settings for the mission sync engine.

Created: 2026-02-14

All values can be overridden with ``MISSIONSYNC_``-prefixed environment
variables, e.g. ``MISSIONSYNC_ROOT_PATH=/srv/clawd``.

Directory layout under ``root_path``:
    mission-control/active/*.md     # Missions being worked on
    mission-control/completed/*.md  # Archived (done) missions
    memory/{agent}/WORKING.md       # Per-agent liveness marker
    dashboard/state.json            # Optional authoritative agent state
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_prefix="MISSIONSYNC_", extra="ignore")

    root_path: Path = Field(default_factory=lambda: Path.home() / "clawd")
    mission_dir_name: str = "mission-control"
    active_dir_name: str = "active"
    archive_dir_name: str = "completed"
    memory_dir_name: str = "memory"
    marker_filename: str = "WORKING.md"
    state_file_name: str = "dashboard/state.json"

    # Known agent ids. Empty means discover from the memory directory.
    agents: list[str] = Field(default_factory=list)

    debounce_seconds: float = Field(default=0.5, ge=0.0)
    stats_interval_seconds: float = Field(default=10.0, gt=0.0)
    feed_capacity: int = Field(default=100, ge=1)
    send_timeout_seconds: float = Field(default=5.0, gt=0.0)
    working_minutes: float = 5.0
    standby_minutes: float = 30.0
    archived_limit: int = 10

    host: str = "127.0.0.1"
    port: int = 8888

    @property
    def mission_path(self) -> Path:
        return self.root_path / self.mission_dir_name

    @property
    def active_path(self) -> Path:
        return self.mission_path / self.active_dir_name

    @property
    def archive_path(self) -> Path:
        return self.mission_path / self.archive_dir_name

    @property
    def memory_path(self) -> Path:
        return self.root_path / self.memory_dir_name

    @property
    def state_path(self) -> Path:
        return self.root_path / self.state_file_name

    def marker_path(self, agent_id: str) -> Path:
        """Return the WORKING.md marker for an agent."""
        return self.memory_path / agent_id.lower() / self.marker_filename


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
