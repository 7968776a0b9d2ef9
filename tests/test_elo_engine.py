"""Unit tests for the contest Elo engine."""

from __future__ import annotations

import pytest

from logo_ledger.domain.ratings.common import MatchRecord, RatingEntry, RatingState, empty_state
from logo_ledger.domain.ratings.elo import (
    EloParameters,
    apply_match,
    blank_state,
    calculate_expected_score,
    ensure_entries,
    normalize_voter_hash,
    prune_entries,
    replay_matches,
)


def test_elo_parameters_defaults_are_expected_constants() -> None:
    params = EloParameters()
    assert params.initial_rating == pytest.approx(1500.0)
    assert params.k_factor == pytest.approx(32.0)
    assert params.scale_factor == pytest.approx(400.0)


def test_expected_score_equal_ratings_is_half() -> None:
    assert calculate_expected_score(1500.0, 1500.0) == pytest.approx(0.5)


def test_expected_scores_sum_to_one() -> None:
    expected_a = calculate_expected_score(1600.0, 1500.0, 400.0)
    expected_b = calculate_expected_score(1500.0, 1600.0, 400.0)
    assert expected_a + expected_b == pytest.approx(1.0)


def test_first_vote_between_new_logos_moves_sixteen_points() -> None:
    state = apply_match(empty_state(), "logo-1", "logo-2", timestamp=1000)

    assert state.entries["logo-1"] == RatingEntry(rating=pytest.approx(1516.0), wins=1, losses=0, matches=1)
    assert state.entries["logo-2"] == RatingEntry(rating=pytest.approx(1484.0), wins=0, losses=1, matches=1)
    assert state.history == (MatchRecord("logo-1", "logo-2", 1000, None),)


def test_match_update_is_zero_sum() -> None:
    state = RatingState(
        entries={
            "a": RatingEntry(rating=1612.5, wins=4, losses=1, matches=5),
            "b": RatingEntry(rating=1388.0, wins=0, losses=3, matches=3),
        },
        history=(),
    )
    updated = apply_match(state, "b", "a", timestamp=5)

    total_before = sum(entry.rating for entry in state.entries.values())
    total_after = sum(entry.rating for entry in updated.entries.values())
    assert total_after == pytest.approx(total_before)
    assert updated.entries["b"].rating > state.entries["b"].rating


def test_apply_match_does_not_mutate_input_state() -> None:
    state = apply_match(empty_state(), "a", "b", timestamp=1)
    snapshot = dict(state.entries)

    apply_match(state, "b", "a", timestamp=2)

    assert state.entries == snapshot
    assert len(state.history) == 1


@pytest.mark.parametrize(("winner", "loser"), [("a", "a"), ("", "b"), ("a", "")])
def test_apply_match_rejects_invalid_pairs(winner: str, loser: str) -> None:
    with pytest.raises(ValueError):
        apply_match(empty_state(), winner, loser)


def test_history_is_newest_first_and_capped() -> None:
    state = empty_state()
    for timestamp in range(1, 6):
        state = apply_match(state, "a", "b", timestamp=timestamp, history_limit=3)

    assert [match.timestamp for match in state.history] == [5, 4, 3]
    assert state.entries["a"].matches == 5


def test_non_positive_history_limit_keeps_everything() -> None:
    state = empty_state()
    for timestamp in range(1, 6):
        state = apply_match(state, "a", "b", timestamp=timestamp, history_limit=0)

    assert len(state.history) == 5


def test_voter_hash_is_trimmed_and_blank_becomes_none() -> None:
    assert normalize_voter_hash("  abc ") == "abc"
    assert normalize_voter_hash("   ") is None
    assert normalize_voter_hash(None) is None

    state = apply_match(empty_state(), "a", "b", "  ", timestamp=1)
    assert state.history[0].voter_hash is None


def test_apply_match_honours_custom_parameters() -> None:
    params = EloParameters(initial_rating=1000.0, k_factor=10.0)
    state = apply_match(empty_state(), "a", "b", timestamp=1, params=params)

    assert state.entries["a"].rating == pytest.approx(1005.0)
    assert state.entries["b"].rating == pytest.approx(995.0)


def test_ensure_entries_returns_same_object_when_nothing_added() -> None:
    state = blank_state(["a", "b"])
    assert ensure_entries(state, ["a", "b"]) is state


def test_ensure_entries_adds_defaults_for_new_roster_ids() -> None:
    state = apply_match(empty_state(), "a", "b", timestamp=1)
    ensured = ensure_entries(state, ["a", "b", "c"])

    assert ensured is not state
    assert ensured.entries["c"] == RatingEntry()
    assert ensured.entries["a"] == state.entries["a"]
    assert ensure_entries(ensured, ["a", "b", "c"]) is ensured


def test_prune_entries_drops_entries_and_history_outside_roster() -> None:
    state = apply_match(empty_state(), "a", "b", timestamp=1)
    state = apply_match(state, "a", "c", timestamp=2)

    pruned = prune_entries(state, ["a", "b"])

    assert set(pruned.entries) == {"a", "b"}
    assert [match.timestamp for match in pruned.history] == [1]
    assert prune_entries(pruned, ["a", "b"]) is pruned


def test_blank_state_has_one_default_entry_per_roster_id() -> None:
    state = blank_state(["x", "y", "z"])
    assert set(state.entries) == {"x", "y", "z"}
    assert all(entry == RatingEntry() for entry in state.entries.values())
    assert state.history == ()


def test_replay_matches_applies_in_given_order() -> None:
    matches = [MatchRecord("a", "b", 1), MatchRecord("b", "a", 2)]
    state = replay_matches(matches)

    assert [match.timestamp for match in state.history] == [2, 1]
    assert state.entries["a"].wins == 1
    assert state.entries["b"].wins == 1
    assert state.entries["a"].rating == pytest.approx(1498.5305, abs=1e-3)
    assert state.entries["b"].rating == pytest.approx(1501.4695, abs=1e-3)
