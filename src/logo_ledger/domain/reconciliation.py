"""Rebuild canonical ratings from the audit trail and compare with stored state."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from logo_ledger.domain.events import AuditEvent, VoteRecorded, VotesReset
from logo_ledger.domain.ratings.common import HISTORY_LIMIT, LogoEntry, RatingEntry, RatingState
from logo_ledger.domain.ratings.elo.calculator import (
    DEFAULT_PARAMETERS,
    EloParameters,
    apply_match,
    blank_state,
    ensure_entries,
    prune_entries,
)

RATING_TOLERANCE = 1e-9


@dataclass(frozen=True)
class RatingDifference:
    logo_id: str
    rating_before: float
    rating_after: float
    wins_before: int
    wins_after: int
    losses_before: int
    losses_after: int
    matches_before: int
    matches_after: int

    @property
    def rating_delta(self) -> float:
        return self.rating_after - self.rating_before

    def as_json(self) -> dict[str, Any]:
        return {
            "logoId": self.logo_id,
            "ratingBefore": self.rating_before,
            "ratingAfter": self.rating_after,
            "ratingDelta": self.rating_delta,
            "winsBefore": self.wins_before,
            "winsAfter": self.wins_after,
            "lossesBefore": self.losses_before,
            "lossesAfter": self.losses_after,
            "matchesBefore": self.matches_before,
            "matchesAfter": self.matches_after,
        }


@dataclass(frozen=True)
class LeaderboardRow:
    logo_id: str
    logo_name: str
    logo_codename: str
    logo_image: str
    rating: float
    wins: int
    losses: int
    matches: int

    def as_json(self) -> dict[str, Any]:
        return {
            "logoId": self.logo_id,
            "logoName": self.logo_name,
            "logoCodename": self.logo_codename,
            "logoImage": self.logo_image,
            "rating": self.rating,
            "wins": self.wins,
            "losses": self.losses,
            "matches": self.matches,
        }


@dataclass(frozen=True)
class RecalculationResult:
    contest_id: str
    dry_run: bool
    applied: bool
    changes_detected: bool
    total_matches: int
    last_match_at: str | None
    differences: tuple[RatingDifference, ...] = ()
    proposed_leaderboard: tuple[LeaderboardRow, ...] = ()
    integrity_issues: tuple[str, ...] = ()
    rejected_events: int = 0

    @property
    def message(self) -> str:
        if self.dry_run:
            if self.changes_detected:
                return "Recalculation preview ready."
            return "No changes detected; ratings already aligned with vote history."
        if self.changes_detected:
            return "Ratings recalculated and persisted."
        return "No changes applied; ratings already aligned."

    def as_json(self) -> dict[str, Any]:
        return {
            "contestId": self.contest_id,
            "dryRun": self.dry_run,
            "applied": self.applied,
            "changesDetected": self.changes_detected,
            "totalMatches": self.total_matches,
            "lastMatchAt": self.last_match_at,
            "differences": [difference.as_json() for difference in self.differences],
            "proposedLeaderboard": [row.as_json() for row in self.proposed_leaderboard],
            "integrityIssues": list(self.integrity_issues),
            "rejectedEvents": self.rejected_events,
            "message": self.message,
        }


def replay_events(
    events: Iterable[AuditEvent],
    roster: Sequence[str],
    params: EloParameters = DEFAULT_PARAMETERS,
    history_limit: int = HISTORY_LIMIT,
    *,
    skipped: list[str] | None = None,
) -> RatingState:
    """Fold audit events, in order, into a fresh rating state.

    A reset discards everything before it. The final state carries exactly one
    entry per roster id. Votes the engine refuses are noted in *skipped*.
    """
    state = blank_state(roster, params)
    for event in events:
        match event:
            case VoteRecorded():
                try:
                    state = apply_match(
                        state,
                        event.winner.id,
                        event.loser.id,
                        event.voter_hash,
                        timestamp=event.match_timestamp,
                        params=params,
                        history_limit=history_limit,
                    )
                except ValueError as exc:
                    if skipped is not None:
                        skipped.append(f"{event.id}: {exc}")
            case VotesReset():
                state = blank_state(roster, params)

    return prune_entries(ensure_entries(state, roster, params), roster)


def matches_since_last_reset(events: Iterable[AuditEvent]) -> int:
    count = 0
    for event in events:
        match event:
            case VoteRecorded():
                count += 1
            case VotesReset():
                count = 0
    return count


def diff_entries(
    before: Mapping[str, RatingEntry],
    after: Mapping[str, RatingEntry],
    params: EloParameters = DEFAULT_PARAMETERS,
) -> list[RatingDifference]:
    """Per-logo changes between two entry maps, largest rating move first."""
    empty = RatingEntry(rating=params.initial_rating)
    differences: list[RatingDifference] = []
    for logo_id in sorted(set(before) | set(after)):
        old = before.get(logo_id, empty)
        new = after.get(logo_id, empty)
        unchanged = (
            abs(new.rating - old.rating) <= RATING_TOLERANCE
            and new.wins == old.wins
            and new.losses == old.losses
            and new.matches == old.matches
            and (logo_id in before) == (logo_id in after)
        )
        if unchanged:
            continue
        differences.append(
            RatingDifference(
                logo_id=logo_id,
                rating_before=old.rating,
                rating_after=new.rating,
                wins_before=old.wins,
                wins_after=new.wins,
                losses_before=old.losses,
                losses_after=new.losses,
                matches_before=old.matches,
                matches_after=new.matches,
            )
        )

    differences.sort(key=lambda difference: (-abs(difference.rating_delta), difference.logo_id))
    return differences


def build_leaderboard(
    entries: Mapping[str, RatingEntry],
    logos: Sequence[LogoEntry],
    size: int = 5,
) -> list[LeaderboardRow]:
    """Top *size* roster logos by rating; entries without a roster row are ignored."""
    by_id = {logo.id: logo for logo in logos}
    rows = [
        LeaderboardRow(
            logo_id=logo_id,
            logo_name=by_id[logo_id].name,
            logo_codename=by_id[logo_id].codename,
            logo_image=by_id[logo_id].image,
            rating=entry.rating,
            wins=entry.wins,
            losses=entry.losses,
            matches=entry.matches,
        )
        for logo_id, entry in entries.items()
        if logo_id in by_id
    ]
    rows.sort(key=lambda row: (-row.rating, row.logo_id))
    return rows[:size]


def find_integrity_issues(entries: Mapping[str, RatingEntry]) -> list[str]:
    return [
        f"{logo_id}: matches={entry.matches} but wins+losses={entry.wins + entry.losses}"
        for logo_id, entry in sorted(entries.items())
        if not entry.is_consistent
    ]


__all__ = [
    "LeaderboardRow",
    "RATING_TOLERANCE",
    "RatingDifference",
    "RecalculationResult",
    "build_leaderboard",
    "diff_entries",
    "find_integrity_issues",
    "matches_since_last_reset",
    "replay_events",
]
