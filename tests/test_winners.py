"""
tests/test_winners.py — Community winner resolution
====================================================

Covers the pure tally (engine.winners) and the persisted flags
(services.winner_service): eligibility, tie-breaks and idempotence.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from itinerary.database.engine import get_session
from itinerary.database.models import Project
from itinerary.engine.winners import pick_winner, tally
from itinerary.services.winner_service import resolve_community_winner

T1 = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
T2 = T1 + timedelta(hours=1)
T3 = T1 + timedelta(hours=2)


def _flags(engine, slug="winter-jam") -> dict[int, tuple[bool, bool]]:
    with get_session(engine) as session:
        rows = session.scalars(select(Project).where(Project.jam == slug)).all()
        return {p.project_id: (p.selected, p.selected_by_community) for p in rows}


def _community(engine, slug="winter-jam") -> list[int]:
    return sorted(pid for pid, (_, c) in _flags(engine, slug).items() if c)


# ===========================================================================
# Pure selection
# ===========================================================================
class TestPickWinner:
    def test_highest_count_wins(self):
        winner = pick_winner({1: T1, 2: T2}, [2, 2, 1])
        assert winner.project_id == 2
        assert winner.count == 2

    def test_tie_goes_to_earliest_submission(self):
        # A (T1) and B (T2 > T1) both have 2 upvotes → A
        assert pick_winner({10: T1, 20: T2}, [10, 20, 20, 10]).project_id == 10
        assert pick_winner({10: T2, 20: T1}, [10, 20, 20, 10]).project_id == 20

    def test_identical_timestamps_fall_back_to_lowest_id(self):
        assert pick_winner({7: T1, 3: T1}, [7, 3]).project_id == 3

    def test_ineligible_upvotes_ignored(self):
        assert pick_winner({1: T1}, [99, 99, 99, 1]).project_id == 1
        assert tally([1, 2], [1, 99, 2, 2]) == {1: 1, 2: 2}

    def test_no_eligible_upvotes(self):
        assert pick_winner({1: T1}, [99]) is None
        assert pick_winner({}, [1, 2]) is None

    def test_naive_timestamps_compare_with_aware(self):
        assert pick_winner({1: T2, 2: T1.replace(tzinfo=None)}, [1, 2]).project_id == 2


# ===========================================================================
# Persisted resolution
# ===========================================================================
class TestResolveCommunityWinner:
    def test_sets_single_winner(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 1, submitted_at=T1)
        make_project("winter-jam", 2, submitted_at=T2)
        add_upvotes("winter-jam", 2, "u1", "u2")
        add_upvotes("winter-jam", 1, "u3")

        assert resolve_community_winner(db_engine, "winter-jam") == 2
        assert _community(db_engine) == [2]

    def test_tie_break_earliest(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 200, submitted_at=T2)   # B
        make_project("winter-jam", 100, submitted_at=T1)   # A
        add_upvotes("winter-jam", 100, "u1", "u2")
        add_upvotes("winter-jam", 200, "u3", "u4")

        assert resolve_community_winner(db_engine, "winter-jam") == 100

    def test_idempotent(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 1, submitted_at=T1)
        make_project("winter-jam", 2, submitted_at=T2)
        add_upvotes("winter-jam", 1, "u1")
        add_upvotes("winter-jam", 2, "u2")

        first = resolve_community_winner(db_engine, "winter-jam")
        snapshot = _flags(db_engine)
        for _ in range(3):
            assert resolve_community_winner(db_engine, "winter-jam") == first
            assert _flags(db_engine) == snapshot

    def test_running_jam_is_untouched(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="open")
        make_project("winter-jam", 1)
        add_upvotes("winter-jam", 1, "u1")

        assert resolve_community_winner(db_engine, "winter-jam") is None
        assert _community(db_engine) == []

    def test_becomes_winner_once_jam_ends(self, db_engine, make_jam, make_project, add_upvotes):
        jam = make_jam(phase="open")
        make_project("winter-jam", 1)
        add_upvotes("winter-jam", 1, "u1")

        later = jam.ends_at + timedelta(seconds=1)
        assert resolve_community_winner(db_engine, "winter-jam", now=later) == 1

    def test_manual_winner_excluded(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 1, submitted_at=T1, selected=True)
        make_project("winter-jam", 2, submitted_at=T2)
        add_upvotes("winter-jam", 1, "u1", "u2", "u3")
        add_upvotes("winter-jam", 2, "u4")

        assert resolve_community_winner(db_engine, "winter-jam") == 2
        assert _flags(db_engine) == {1: (True, False), 2: (False, True)}

    def test_no_eligible_upvotes_clears_flags(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 1, submitted_at=T1)
        add_upvotes("winter-jam", 1, "u1")
        resolve_community_winner(db_engine, "winter-jam")
        assert _community(db_engine) == [1]

        with get_session(db_engine) as session:
            session.execute(
                Project.__table__.update().where(Project.project_id == 1).values(selected=True)
            )
        make_project("winter-jam", 2, submitted_at=T3)

        assert resolve_community_winner(db_engine, "winter-jam") is None
        assert _community(db_engine) == []

    def test_missing_jam_is_noop(self, db_engine):
        assert resolve_community_winner(db_engine, "nope") is None

    def test_winner_moves_when_tally_changes(self, db_engine, make_jam, make_project, add_upvotes):
        make_jam(phase="ended")
        make_project("winter-jam", 1, submitted_at=T1)
        make_project("winter-jam", 2, submitted_at=T2)
        add_upvotes("winter-jam", 1, "u1")
        assert resolve_community_winner(db_engine, "winter-jam") == 1

        add_upvotes("winter-jam", 2, "u2", "u3")
        assert resolve_community_winner(db_engine, "winter-jam") == 2
        assert _community(db_engine) == [2]
