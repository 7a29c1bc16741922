"""Mission status transition rules.

Created: 2026-02-14

Pure functions; the engine calls these after diffing a freshly parsed
mission against its cached state.
"""

from missionsync.models import MissionStatus

_TRANSITIONS: dict[tuple[MissionStatus, MissionStatus], str] = {
    (MissionStatus.QUEUE, MissionStatus.PROGRESS): "started",
    (MissionStatus.PROGRESS, MissionStatus.REVIEW): "submitted for review",
    (MissionStatus.REVIEW, MissionStatus.PROGRESS): "returned to progress",
}

DEFAULT_ACTION = "moved"


def classify(
    old_status: MissionStatus | None,
    new_status: MissionStatus,
    old_assignee: str | None = None,
    new_assignee: str | None = None,
) -> str | None:
    """Label the change between two observations of the same mission.

    Returns None when there is nothing to report: the first observation of
    a mission (``old_status`` is None), or neither status nor assignee moved.
    """
    if old_status is None:
        return None

    if old_status != new_status:
        if new_status == MissionStatus.DONE:
            return "completed"
        return _TRANSITIONS.get((old_status, new_status), DEFAULT_ACTION)

    if old_assignee == new_assignee:
        return None
    if old_assignee is None:
        return "assigned to self"
    if new_assignee is None:
        return "unassigned"
    return "reassigned"


def should_auto_archive(old_status: MissionStatus | None, new_status: MissionStatus) -> bool:
    """True exactly when a mission newly enters DONE."""
    return new_status == MissionStatus.DONE and old_status != MissionStatus.DONE
