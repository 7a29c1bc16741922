"""Add YAML headers to legacy mission documents.

Created: 2026-02-15

Older mission files carry their metadata as free text ("**Status:** In
Progress", "Priority: high"). This rewrites them with a structured header
so later reads don't depend on heuristics. The body is kept as-is.

Documents that already have a header are skipped unless ``force`` is set.
Anything in the archive area is written out as done.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from missionsync.codec import parse_document, serialize, to_mission
from missionsync.config import Settings
from missionsync.models import MissionStatus

logger = logging.getLogger(__name__)

# Extra tags inferred from body keywords
_KEYWORD_TAGS = {
    "research": ("research",),
    "development": ("develop", "build"),
}


@dataclass
class MigrationReport:
    """Outcome of a migration run."""

    migrated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.migrated)} migrated, {len(self.skipped)} skipped, "
            f"{len(self.failed)} failed"
        )


def migrate_text(raw: str, storage_key: str, archived: bool = False) -> str:
    """Return ``raw`` re-encoded with a structured header."""
    document = parse_document(raw)
    mission = to_mission(document, storage_key)
    if archived:
        mission.status = MissionStatus.DONE

    lowered = document.body.lower()
    for tag, keywords in _KEYWORD_TAGS.items():
        if tag not in mission.tags and any(k in lowered for k in keywords):
            mission.tags.append(tag)

    return serialize(mission, body=document.body, extra=document.header)


def migrate_file(
    path: Path, report: MigrationReport, archived: bool, dry_run: bool, force: bool
) -> None:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Failed to read %s: %s", path, e)
        report.failed.append(str(path))
        return

    if parse_document(raw).has_header and not force:
        logger.info("Skip (has header): %s", path.name)
        report.skipped.append(str(path))
        return

    text = migrate_text(raw, path.name, archived=archived)
    if dry_run:
        logger.info("Would migrate: %s", path.name)
        report.migrated.append(str(path))
        return

    try:
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        logger.error("Failed to write %s: %s", path, e)
        report.failed.append(str(path))
        return
    logger.info("Migrated: %s", path.name)
    report.migrated.append(str(path))


def migrate_missions(
    settings: Settings, dry_run: bool = False, force: bool = False
) -> MigrationReport:
    """Migrate every document in the active and archive areas."""
    report = MigrationReport()
    for directory, archived in ((settings.active_path, False), (settings.archive_path, True)):
        if not directory.is_dir():
            logger.debug("No directory at %s", directory)
            continue
        for path in sorted(directory.glob("*.md")):
            migrate_file(path, report, archived=archived, dry_run=dry_run, force=force)
    logger.info("Migration finished: %s", report.summary())
    return report
