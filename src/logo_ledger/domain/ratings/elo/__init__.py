"""Elo rating modules."""

from logo_ledger.domain.ratings.elo.calculator import (
    DEFAULT_PARAMETERS,
    EloParameters,
    apply_match,
    blank_state,
    calculate_expected_score,
    create_empty_entry,
    ensure_entries,
    normalize_voter_hash,
    prune_entries,
    replay_matches,
)
from logo_ledger.domain.ratings.elo.config import parse_elo_parameters

__all__ = [
    "DEFAULT_PARAMETERS",
    "EloParameters",
    "apply_match",
    "blank_state",
    "calculate_expected_score",
    "create_empty_entry",
    "ensure_entries",
    "normalize_voter_hash",
    "parse_elo_parameters",
    "prune_entries",
    "replay_matches",
]
