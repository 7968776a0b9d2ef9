"""Tests for replaying the audit trail and reconciling stored ratings."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import CONTEST_ID, backup_files, read_json
from logo_ledger.domain.events import ParticipantSnapshot, VoteRecorded, VotesReset
from logo_ledger.domain.ratings.common import RatingEntry
from logo_ledger.domain.reconciliation import diff_entries, find_integrity_issues, replay_events
from logo_ledger.repositories.vote_store import VoteStore

ISO_NOW = "2024-01-01T00:00:00.000Z"
MATCH_ONE_TIMESTAMP = 1_704_067_200_000
MATCH_TWO_TIMESTAMP = 1_704_067_500_000


def _snapshot(logo_id: str) -> ParticipantSnapshot:
    return ParticipantSnapshot(
        id=logo_id,
        name=logo_id,
        codename=logo_id,
        rating_before=1500.0,
        rating_after=1500.0,
        wins_before=0,
        wins_after=0,
        losses_before=0,
        losses_after=0,
        matches_before=0,
        matches_after=0,
    )


def _vote(event_id: str, winner: str, loser: str, timestamp: int, contest_id: str = CONTEST_ID) -> VoteRecorded:
    return VoteRecorded(
        id=event_id,
        occurred_at=ISO_NOW,
        contest_id=contest_id,
        voter_hash=None,
        match_timestamp=timestamp,
        match_history_length=1,
        winner=_snapshot(winner),
        loser=_snapshot(loser),
    )


def _reset(event_id: str) -> VotesReset:
    return VotesReset(
        id=event_id,
        occurred_at=ISO_NOW,
        contest_id=CONTEST_ID,
        initiator=None,
        reason="manual-reset",
        previous_match_count=1,
    )


def _seed_drifted_contest(data_dir: Path) -> None:
    """Ratings file still at defaults while the audit trail holds two wins for logo-1."""
    (data_dir / "votes.json").write_text(
        json.dumps(
            {
                "version": 2,
                "contests": {
                    CONTEST_ID: {
                        "state": {
                            "entries": {
                                "logo-1": {"rating": 1500, "wins": 0, "losses": 0, "matches": 0},
                                "logo-2": {"rating": 1500, "wins": 0, "losses": 0, "matches": 0},
                            },
                            "history": [],
                        },
                        "updatedAt": ISO_NOW,
                    }
                },
                "updatedAt": ISO_NOW,
            },
            indent=2,
        )
        + "\n"
    )
    with (data_dir / "vote-events.ndjson").open("w") as handle:
        for event in (
            _vote("evt-1", "logo-1", "logo-2", MATCH_ONE_TIMESTAMP),
            _vote("evt-2", "logo-1", "logo-2", MATCH_TWO_TIMESTAMP),
        ):
            handle.write(json.dumps(event.as_json()) + "\n")


def test_replay_folds_votes_in_order() -> None:
    state = replay_events(
        [_vote("e1", "a", "b", 1), _vote("e2", "a", "b", 2)],
        ["a", "b"],
    )

    assert state.entries["a"].rating == pytest.approx(1530.5305, abs=1e-3)
    assert state.entries["a"].wins == 2
    assert [match.timestamp for match in state.history] == [2, 1]


def test_replay_restarts_after_reset_and_aligns_with_roster() -> None:
    skipped: list[str] = []
    state = replay_events(
        [_vote("e1", "a", "b", 1), _reset("r1"), _vote("e2", "b", "c", 2), _vote("e3", "c", "c", 3)],
        ["a", "b"],
        skipped=skipped,
    )

    assert state.entries["a"] == RatingEntry()
    assert state.entries["b"].wins == 1
    assert "c" not in state.entries
    assert state.history == ()
    assert len(skipped) == 1 and skipped[0].startswith("e3:")


def test_diff_entries_orders_by_largest_rating_move() -> None:
    before = {
        "a": RatingEntry(),
        "b": RatingEntry(),
        "c": RatingEntry(rating=1510.0, wins=1, losses=0, matches=1),
    }
    after = {
        "a": RatingEntry(rating=1504.0, wins=1, losses=0, matches=1),
        "b": RatingEntry(rating=1490.0, wins=0, losses=1, matches=1),
        "c": RatingEntry(rating=1510.0 + 1e-12, wins=1, losses=0, matches=1),
    }

    differences = diff_entries(before, after)

    assert [difference.logo_id for difference in differences] == ["b", "a"]
    assert differences[0].rating_delta == pytest.approx(-10.0)
    assert differences[1].wins_after == 1


def test_diff_entries_reports_added_and_removed_logos() -> None:
    differences = diff_entries({"gone": RatingEntry()}, {"new": RatingEntry()})
    assert {difference.logo_id for difference in differences} == {"gone", "new"}


def test_integrity_issues_flag_inconsistent_counters() -> None:
    issues = find_integrity_issues(
        {"ok": RatingEntry(wins=1, losses=1, matches=2), "bad": RatingEntry(wins=1, losses=1, matches=3)}
    )
    assert issues == ["bad: matches=3 but wins+losses=2"]


def test_dry_run_reports_drift_without_writing(store: VoteStore, data_dir: Path) -> None:
    _seed_drifted_contest(data_dir)
    before = (data_dir / "votes.json").read_bytes()

    result = store.recalculate(CONTEST_ID, dry_run=True)

    assert result.dry_run is True
    assert result.applied is False
    assert result.changes_detected is True
    assert result.total_matches == 2
    assert result.last_match_at == "2024-01-01T00:05:00.000Z"
    logo_one = next(diff for diff in result.differences if diff.logo_id == "logo-1")
    assert logo_one.wins_after == 2
    assert logo_one.matches_after == 2
    assert result.proposed_leaderboard[0].logo_id == "logo-1"
    assert (data_dir / "votes.json").read_bytes() == before
    assert backup_files(data_dir) == []


def test_applied_recalculation_persists_with_backup(store: VoteStore, data_dir: Path) -> None:
    _seed_drifted_contest(data_dir)

    result = store.recalculate(CONTEST_ID, dry_run=False)

    assert result.applied is True
    logo_one = next(diff for diff in result.differences if diff.logo_id == "logo-1")
    assert logo_one.rating_after > logo_one.rating_before

    entry = read_json(data_dir / "votes.json")["contests"][CONTEST_ID]["state"]["entries"]["logo-1"]
    assert entry["rating"] > 1500
    assert entry["wins"] == 2
    assert entry["matches"] == 2
    assert len(backup_files(data_dir)) >= 1

    follow_up = store.recalculate(CONTEST_ID, dry_run=True)
    assert follow_up.changes_detected is False


def test_recalculation_is_a_no_op_for_consistent_store(store: VoteStore) -> None:
    store.record_vote("logo-1", "logo-2", None, CONTEST_ID)
    store.record_vote("logo-2", "logo-1", "voter", CONTEST_ID)
    store.reset_contest_votes(CONTEST_ID)
    store.record_vote("logo-2", "logo-1", None, CONTEST_ID)

    result = store.recalculate(CONTEST_ID, dry_run=True)

    assert result.changes_detected is False
    assert result.differences == ()
    assert result.total_matches == 1
    assert result.integrity_issues == ()
    assert result.message.startswith("No changes detected")


def test_recalculation_reports_integrity_issues(store: VoteStore, data_dir: Path) -> None:
    _seed_drifted_contest(data_dir)
    document = read_json(data_dir / "votes.json")
    document["contests"][CONTEST_ID]["state"]["entries"]["logo-2"]["matches"] = 4
    (data_dir / "votes.json").write_text(json.dumps(document))

    result = store.recalculate(CONTEST_ID)

    assert result.integrity_issues == ("logo-2: matches=4 but wins+losses=0",)


def test_dry_run_leaves_a_corrupt_file_untouched(store: VoteStore, data_dir: Path) -> None:
    store.record_vote("logo-1", "logo-2", None, CONTEST_ID)
    backups_before = backup_files(data_dir)
    (data_dir / "votes.json").write_text("not json")

    result = store.recalculate(CONTEST_ID, dry_run=True)

    assert (data_dir / "votes.json").read_bytes() == b"not json"
    assert backup_files(data_dir) == backups_before
    assert result.applied is False
    assert result.changes_detected is False
    assert result.total_matches == 1


def test_dry_run_without_backups_does_not_seed_a_file(store: VoteStore, data_dir: Path) -> None:
    (data_dir / "votes.json").write_text("not json")

    result = store.recalculate(CONTEST_ID, dry_run=True)

    assert (data_dir / "votes.json").read_bytes() == b"not json"
    assert backup_files(data_dir) == []
    assert result.changes_detected is False
