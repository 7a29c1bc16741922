# Tests for mission status transitions
# Created: 2026-02-14

import pytest

from missionsync.models import MissionStatus
from missionsync.transitions import classify, should_auto_archive

Q = MissionStatus.QUEUE
P = MissionStatus.PROGRESS
R = MissionStatus.REVIEW
D = MissionStatus.DONE


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        "old,new,expected",
        [
            (Q, P, "started"),
            (P, R, "submitted for review"),
            (R, P, "returned to progress"),
            (Q, D, "completed"),
            (P, D, "completed"),
            (R, D, "completed"),
            (Q, R, "moved"),
            (P, Q, "moved"),
            (D, P, "moved"),
        ],
    )
    def test_status_changes(self, old, new, expected):
        assert classify(old, new) == expected

    def test_first_observation(self):
        """No previous state means nothing to report."""
        assert classify(None, P) is None
        assert classify(None, D, None, "FORGE") is None

    def test_no_change(self):
        assert classify(P, P) is None
        assert classify(P, P, "FORGE", "FORGE") is None

    def test_assignee_changes(self):
        assert classify(Q, Q, None, "FORGE") == "assigned to self"
        assert classify(Q, Q, "FORGE", None) == "unassigned"
        assert classify(Q, Q, "FORGE", "SCOUT") == "reassigned"

    def test_status_change_wins_over_assignee(self):
        assert classify(Q, P, None, "FORGE") == "started"

    def test_deterministic(self):
        assert classify(R, P, "A", "B") == classify(R, P, "A", "B")


class TestAutoArchive:
    """Tests for should_auto_archive()."""

    @pytest.mark.parametrize("old", [None, Q, P, R])
    def test_entering_done(self, old):
        assert should_auto_archive(old, D)

    def test_already_done(self):
        assert not should_auto_archive(D, D)

    @pytest.mark.parametrize("new", [Q, P, R])
    def test_not_done(self, new):
        assert not should_auto_archive(P, new)
