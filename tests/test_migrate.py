# Tests for legacy document migration and the CLI
# Created: 2026-02-15

import pytest

import missionsync.__main__ as main_module
from missionsync.codec import parse_document, parse_mission
from missionsync.config import Settings
from missionsync.migrate import MigrationReport, migrate_missions, migrate_text
from missionsync.models import MissionPriority, MissionStatus

LEGACY = """# Task: Research competitors

**Status:** In Progress
Priority: high

We will research the market and build a short report.
"""


@pytest.fixture
def settings(tmp_path):
    settings = Settings(root_path=tmp_path)
    settings.active_path.mkdir(parents=True)
    settings.archive_path.mkdir(parents=True)
    return settings


class TestMigrateText:
    """Tests for migrate_text()."""

    def test_adds_header(self):
        text = migrate_text(LEGACY, "scout-research.md")
        assert parse_document(text).has_header
        assert text.endswith(LEGACY)

        mission = parse_mission(text, "scout-research.md")
        assert mission.title == "Research competitors"
        assert mission.status == MissionStatus.PROGRESS
        assert mission.priority == MissionPriority.HIGH
        assert mission.assigned_to == "SCOUT"
        assert mission.tags == ["urgent", "research", "development"]

    def test_archived_becomes_done(self):
        text = migrate_text(LEGACY, "scout-research.md", archived=True)
        assert parse_mission(text, "scout-research.md").status == MissionStatus.DONE

    def test_keeps_unknown_header_keys(self):
        raw = "---\ntitle: Old\nstatus: review\nowner: ops\n---\n\n# Old\n"
        text = migrate_text(raw, "old.md")
        assert "owner: ops" in text
        assert parse_mission(text, "old.md").status == MissionStatus.REVIEW


class TestMigrateMissions:
    """Tests for migrate_missions()."""

    def test_migrates_legacy_and_skips_structured(self, settings):
        legacy = settings.active_path / "scout-research.md"
        legacy.write_text(LEGACY, encoding="utf-8")
        structured = settings.active_path / "forge-done.md"
        structured.write_text("---\ntitle: Done\nstatus: review\n---\n", encoding="utf-8")
        archived = settings.archive_path / "forge-old.md"
        archived.write_text("# Old work\n\nStatus: in progress\n", encoding="utf-8")

        report = migrate_missions(settings)
        assert sorted(report.migrated) == sorted([str(legacy), str(archived)])
        assert report.skipped == [str(structured)]
        assert report.failed == []
        assert report.summary() == "2 migrated, 1 skipped, 0 failed"

        assert parse_document(legacy.read_text(encoding="utf-8")).has_header
        assert parse_mission(archived.read_text(encoding="utf-8"), "forge-old.md").status == (
            MissionStatus.DONE
        )

    def test_dry_run_leaves_files(self, settings):
        legacy = settings.active_path / "scout-research.md"
        legacy.write_text(LEGACY, encoding="utf-8")
        report = migrate_missions(settings, dry_run=True)
        assert report.migrated == [str(legacy)]
        assert legacy.read_text(encoding="utf-8") == LEGACY

    def test_force_rewrites_structured(self, settings):
        path = settings.active_path / "forge-a.md"
        path.write_text("---\ntitle: A\nstatus: review\n---\n", encoding="utf-8")
        report = migrate_missions(settings, force=True)
        assert report.migrated == [str(path)]
        assert "priority: medium" in path.read_text(encoding="utf-8")

    def test_unreadable_file_reported(self, settings):
        bad = settings.active_path / "bad.md"
        bad.write_bytes(b"\xff\xfe\x00broken")
        report = migrate_missions(settings)
        assert report.failed == [str(bad)]

    def test_missing_directories(self, tmp_path):
        report = migrate_missions(Settings(root_path=tmp_path / "nowhere"))
        assert report == MigrationReport()


class TestCli:
    """Tests for the command line entry point."""

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(main_module, "setup_logging", lambda level: None)

    def test_migrate_command(self, settings):
        path = settings.active_path / "scout-research.md"
        path.write_text(LEGACY, encoding="utf-8")
        assert main_module.main(["migrate", "--root", str(settings.root_path)]) == 0
        assert parse_document(path.read_text(encoding="utf-8")).has_header

    def test_migrate_failure_exit_code(self, settings):
        (settings.active_path / "bad.md").write_bytes(b"\xff\xfe\x00broken")
        assert main_module.main(["migrate", "--root", str(settings.root_path)]) == 1

    def test_serve_passes_overrides(self, settings, monkeypatch):
        import missionsync.server as server_module

        seen = {}
        monkeypatch.setattr(server_module, "run_server", lambda s: seen.setdefault("s", s))
        assert main_module.main(["serve", "--root", str(settings.root_path), "-p", "9100"]) == 0
        assert seen["s"].root_path == settings.root_path
        assert seen["s"].port == 9100

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            main_module.main(["explode"])
