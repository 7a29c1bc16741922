# Tests for agent liveness
# Created: 2026-02-14
# Marker ages are set with os.utime; "now" is passed explicitly

import json
import os
import time

import pytest

from missionsync.config import Settings
from missionsync.liveness import LivenessProbe, bucket_by_age
from missionsync.models import AgentLiveness


@pytest.fixture
def settings(tmp_path):
    return Settings(root_path=tmp_path)


@pytest.fixture
def probe(settings):
    return LivenessProbe(settings)


def write_marker(settings, agent: str, content: str = "", age_minutes: float = 0.0) -> float:
    """Create an agent marker aged ``age_minutes``; returns its mtime."""
    path = settings.marker_path(agent)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    mtime = time.time() - age_minutes * 60
    os.utime(path, (mtime, mtime))
    return mtime


def write_state(settings, agents: dict, mtime: float | None = None) -> None:
    settings.state_path.parent.mkdir(parents=True, exist_ok=True)
    settings.state_path.write_text(json.dumps({"agents": agents}), encoding="utf-8")
    if mtime is not None:
        os.utime(settings.state_path, (mtime, mtime))


class TestBucketByAge:
    """Tests for bucket_by_age()."""

    def test_buckets(self):
        assert bucket_by_age(0) == AgentLiveness.WORKING
        assert bucket_by_age(4 * 60) == AgentLiveness.WORKING
        assert bucket_by_age(5 * 60) == AgentLiveness.STANDBY
        assert bucket_by_age(29 * 60) == AgentLiveness.STANDBY
        assert bucket_by_age(30 * 60) == AgentLiveness.OFFLINE

    def test_custom_thresholds(self):
        assert bucket_by_age(90, working_minutes=1, standby_minutes=2) == AgentLiveness.STANDBY


class TestLivenessProbe:
    """Tests for LivenessProbe."""

    def test_recent_marker_is_working(self, settings, probe):
        """A marker touched 3 minutes ago means working."""
        write_marker(settings, "forge", age_minutes=3)
        assert probe.liveness("forge") == AgentLiveness.WORKING

    def test_stale_marker_is_offline(self, settings, probe):
        """A marker touched 40 minutes ago means offline."""
        write_marker(settings, "forge", age_minutes=40)
        assert probe.liveness("forge") == AgentLiveness.OFFLINE

    def test_standby(self, settings, probe):
        write_marker(settings, "forge", age_minutes=12)
        assert probe.liveness("FORGE") == AgentLiveness.STANDBY

    def test_missing_marker_is_offline(self, probe):
        assert probe.liveness("ghost") == AgentLiveness.OFFLINE

    def test_explicit_now(self, settings, probe):
        mtime = write_marker(settings, "forge")
        assert probe.liveness("forge", now=mtime + 60) == AgentLiveness.WORKING
        assert probe.liveness("forge", now=mtime + 3600) == AgentLiveness.OFFLINE

    def test_fresh_state_file_overrides(self, settings, probe):
        mtime = write_marker(settings, "forge", age_minutes=40)
        write_state(settings, {"Forge": {"status": "active"}}, mtime=mtime + 1)
        assert probe.liveness("forge") == AgentLiveness.WORKING

    def test_state_file_blocked_and_idle(self, settings, probe):
        write_marker(settings, "forge", age_minutes=1)
        write_marker(settings, "scout", age_minutes=1)
        write_state(settings, {"forge": {"status": "blocked"}, "scout": {"status": "idle"}})
        assert probe.liveness("forge") == AgentLiveness.BLOCKED
        assert probe.liveness("scout") == AgentLiveness.STANDBY

    def test_stale_state_file_ignored(self, settings, probe):
        """A state file older than the marker does not override it."""
        mtime = write_marker(settings, "forge", age_minutes=1)
        write_state(settings, {"forge": {"status": "blocked"}}, mtime=mtime - 600)
        assert probe.liveness("forge") == AgentLiveness.WORKING

    def test_broken_state_file(self, settings, probe):
        write_marker(settings, "forge", age_minutes=1)
        settings.state_path.parent.mkdir(parents=True, exist_ok=True)
        settings.state_path.write_text("{not json", encoding="utf-8")
        assert probe.read_state() == {}
        assert probe.liveness("forge") == AgentLiveness.WORKING

    def test_current_task_from_marker(self, settings, probe):
        write_marker(settings, "forge", "# Forge\n\nCurrent Task: Build the parser\n")
        assert probe.current_task("forge") == "Build the parser"

    def test_current_task_truncated(self, settings, probe):
        write_marker(settings, "forge", "Current: " + "x" * 100)
        assert len(probe.current_task("forge")) == 60

    def test_current_task_from_state(self, settings, probe):
        write_marker(settings, "forge", "Current Task: from marker\n")
        write_state(settings, {"forge": {"currentTask": "from state"}})
        assert probe.current_task("forge") == "from state"

    def test_known_agents_from_memory(self, settings, probe):
        write_marker(settings, "forge")
        (settings.memory_path / "Scout").mkdir()
        (settings.memory_path / ".hidden").mkdir()
        assert probe.known_agents() == ["forge", "scout"]

    def test_known_agents_configured(self, tmp_path):
        probe = LivenessProbe(Settings(root_path=tmp_path, agents=["Forge", "SCOUT"]))
        assert probe.known_agents() == ["forge", "scout"]

    def test_known_agents_without_memory_dir(self, probe):
        assert probe.known_agents() == []

    def test_agent_from_path(self, settings, probe):
        assert probe.agent_from_path(settings.marker_path("forge")) == "forge"
        assert probe.agent_from_path(settings.memory_path / "forge" / "notes.md") is None
        assert probe.agent_from_path(settings.root_path / "WORKING.md") is None

    def test_snapshot(self, settings, probe):
        write_marker(settings, "forge", "Status: shipping\n", age_minutes=2)
        snapshot = probe.snapshot("FORGE")
        assert snapshot.id == "forge"
        assert snapshot.name == "FORGE"
        assert snapshot.status == AgentLiveness.WORKING
        assert snapshot.current_task == "shipping"
        assert snapshot.last_seen is not None
        data = snapshot.to_dict()
        assert data["currentTask"] == "shipping"
        assert data["status"] == "working"

    def test_snapshot_missing_agent(self, probe):
        snapshot = probe.snapshot("ghost")
        assert snapshot.status == AgentLiveness.OFFLINE
        assert snapshot.last_seen is None
        assert snapshot.current_task is None

    def test_snapshots_sorted(self, settings, probe):
        write_marker(settings, "alpha", age_minutes=60)
        write_marker(settings, "bravo", age_minutes=10)
        write_marker(settings, "charlie", age_minutes=1)
        statuses = [(s.id, s.status) for s in probe.snapshots()]
        assert statuses == [
            ("charlie", AgentLiveness.WORKING),
            ("bravo", AgentLiveness.STANDBY),
            ("alpha", AgentLiveness.OFFLINE),
        ]

    def test_count_working(self, settings, probe):
        write_marker(settings, "alpha", age_minutes=1)
        write_marker(settings, "bravo", age_minutes=2)
        write_marker(settings, "charlie", age_minutes=45)
        assert probe.count_working() == (2, 3)
