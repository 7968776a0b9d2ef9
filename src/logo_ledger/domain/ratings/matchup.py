"""Matchmaking: choose which two logos are compared next."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from logo_ledger.domain.ratings.common import LogoEntry, Matchup, RatingEntry, create_pair_key
from logo_ledger.domain.ratings.elo.calculator import DEFAULT_PARAMETERS, EloParameters, create_empty_entry


def produce_matchup(
    logos: Sequence[LogoEntry],
    entries: Mapping[str, RatingEntry],
    previous: Matchup | None = None,
    *,
    params: EloParameters = DEFAULT_PARAMETERS,
) -> Matchup | None:
    """Pick the least-exposed logo and its closest-rated challenger.

    Primaries are tried in (matches, rating) order; challengers in
    (|rating gap|, matches) order. The unordered pair in *previous* is skipped
    unless it is the only pairing available. Returns ``None`` for fewer than
    two logos.
    """
    if len(logos) < 2:
        return None

    avoided_key = previous.pair_key if previous is not None else None
    catalog = [(logo, entries.get(logo.id) or create_empty_entry(params)) for logo in logos]
    by_exposure = sorted(catalog, key=lambda item: (item[1].matches, item[1].rating))

    fallback: Matchup | None = None
    for primary, primary_entry in by_exposure:
        candidates = sorted(
            (item for item in catalog if item[0].id != primary.id),
            key=lambda item: (abs(item[1].rating - primary_entry.rating), item[1].matches),
        )
        if candidates and fallback is None:
            fallback = Matchup(primary=primary, challenger=candidates[0][0])

        for challenger, _ in candidates:
            if avoided_key is not None and create_pair_key(primary.id, challenger.id) == avoided_key:
                continue
            return Matchup(primary=primary, challenger=challenger)

    return fallback


__all__ = ["produce_matchup"]
