"""Contest Elo logic: pure state transitions over :class:`RatingState`."""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass

from logo_ledger.domain.ratings.common import (
    DEFAULT_RATING,
    HISTORY_LIMIT,
    K_FACTOR,
    MatchRecord,
    RatingEntry,
    RatingState,
    empty_state,
)


@dataclass(frozen=True)
class EloParameters:
    initial_rating: float = DEFAULT_RATING
    k_factor: float = K_FACTOR
    scale_factor: float = 400.0


DEFAULT_PARAMETERS = EloParameters()


def calculate_expected_score(rating: float, opponent_rating: float, scale_factor: float = 400.0) -> float:
    """Compute the Elo expected score for one side."""
    return 1.0 / (1.0 + 10.0 ** ((opponent_rating - rating) / scale_factor))


def normalize_voter_hash(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip()
    return trimmed or None


def current_epoch_ms() -> int:
    return int(time.time() * 1000)


def create_empty_entry(params: EloParameters = DEFAULT_PARAMETERS) -> RatingEntry:
    return RatingEntry(rating=params.initial_rating, wins=0, losses=0, matches=0)


def apply_match(
    state: RatingState,
    winner_id: str,
    loser_id: str,
    voter_hash: str | None = None,
    *,
    timestamp: int | None = None,
    params: EloParameters = DEFAULT_PARAMETERS,
    history_limit: int = HISTORY_LIMIT,
) -> RatingState:
    """Return the state after *winner_id* beats *loser_id*.

    Logos without an entry start from ``params.initial_rating``. The new match
    is prepended to history, which is then cut to ``history_limit`` records
    (oldest dropped). A non-positive ``history_limit`` keeps everything.
    """
    if not winner_id or not loser_id:
        raise ValueError("winner_id and loser_id are required")
    if winner_id == loser_id:
        raise ValueError(f"winner_id and loser_id must differ (got {winner_id!r} twice)")

    winner = state.entries.get(winner_id) or create_empty_entry(params)
    loser = state.entries.get(loser_id) or create_empty_entry(params)

    winner_expected = calculate_expected_score(
        rating=winner.rating,
        opponent_rating=loser.rating,
        scale_factor=params.scale_factor,
    )
    winner_delta = params.k_factor * (1.0 - winner_expected)
    # E_loser == 1 - E_winner, so the loser's K * (0 - E_loser) is exactly -winner_delta.
    loser_delta = -winner_delta

    entries = dict(state.entries)
    entries[winner_id] = RatingEntry(
        rating=winner.rating + winner_delta,
        wins=winner.wins + 1,
        losses=winner.losses,
        matches=winner.matches + 1,
    )
    entries[loser_id] = RatingEntry(
        rating=loser.rating + loser_delta,
        wins=loser.wins,
        losses=loser.losses + 1,
        matches=loser.matches + 1,
    )

    record = MatchRecord(
        winner_id=winner_id,
        loser_id=loser_id,
        timestamp=current_epoch_ms() if timestamp is None else int(timestamp),
        voter_hash=normalize_voter_hash(voter_hash),
    )
    history = (record, *state.history)
    if history_limit > 0:
        history = history[:history_limit]

    return RatingState(entries=entries, history=history)


def ensure_entries(
    state: RatingState,
    logo_ids: Iterable[str],
    params: EloParameters = DEFAULT_PARAMETERS,
) -> RatingState:
    """Add a default entry for every roster id that lacks one.

    Returns *state* itself when nothing was added.
    """
    missing = [logo_id for logo_id in logo_ids if logo_id not in state.entries]
    if not missing:
        return state

    entries = dict(state.entries)
    for logo_id in missing:
        entries[logo_id] = create_empty_entry(params)
    return RatingState(entries=entries, history=state.history)


def prune_entries(state: RatingState, logo_ids: Iterable[str]) -> RatingState:
    """Drop entries and history records that reference logos off the roster.

    The audit log still holds the original events.
    Returns *state* itself when nothing was removed.
    """
    active_ids = set(logo_ids)
    entries = {logo_id: entry for logo_id, entry in state.entries.items() if logo_id in active_ids}
    history = tuple(
        match
        for match in state.history
        if match.winner_id in active_ids and match.loser_id in active_ids
    )

    if len(entries) == len(state.entries) and len(history) == len(state.history):
        return state
    return RatingState(entries=entries, history=history)


def blank_state(logo_ids: Iterable[str], params: EloParameters = DEFAULT_PARAMETERS) -> RatingState:
    """Fresh state with a default entry per roster id and no history."""
    ids = list(logo_ids)
    return prune_entries(ensure_entries(empty_state(), ids, params), ids)


def replay_matches(
    matches: Iterable[MatchRecord],
    *,
    start: RatingState | None = None,
    params: EloParameters = DEFAULT_PARAMETERS,
    history_limit: int = HISTORY_LIMIT,
) -> RatingState:
    """Feed *matches* in the given order through :func:`apply_match`."""
    state = start if start is not None else empty_state()
    for match in matches:
        state = apply_match(
            state,
            match.winner_id,
            match.loser_id,
            match.voter_hash,
            timestamp=match.timestamp,
            params=params,
            history_limit=history_limit,
        )
    return state


__all__ = [
    "DEFAULT_PARAMETERS",
    "EloParameters",
    "apply_match",
    "blank_state",
    "calculate_expected_score",
    "create_empty_entry",
    "current_epoch_ms",
    "ensure_entries",
    "normalize_voter_hash",
    "prune_entries",
    "replay_matches",
]
