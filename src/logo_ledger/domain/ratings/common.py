"""Shared types for the contest rating ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_RATING = 1500.0
K_FACTOR = 32.0
HISTORY_LIMIT = 1000
DEFAULT_CONTEST_ID = "badge-arena"


@dataclass(frozen=True)
class RatingEntry:
    """Current Elo rating and record for one logo."""

    rating: float = DEFAULT_RATING
    wins: int = 0
    losses: int = 0
    matches: int = 0

    @property
    def is_consistent(self) -> bool:
        return self.matches == self.wins + self.losses

    def as_json(self) -> dict[str, Any]:
        return {
            "rating": self.rating,
            "wins": self.wins,
            "losses": self.losses,
            "matches": self.matches,
        }


@dataclass(frozen=True)
class MatchRecord:
    """One pairwise vote as kept in ledger history and vote exports."""

    winner_id: str
    loser_id: str
    timestamp: int
    voter_hash: str | None = None

    @property
    def sort_key(self) -> tuple[int, str, str, str]:
        return (self.timestamp, self.winner_id, self.loser_id, self.voter_hash or "")

    @property
    def dedupe_key(self) -> str:
        return f"{self.timestamp}|{self.winner_id}|{self.loser_id}|{self.voter_hash or ''}"

    def involves(self, logo_id: str) -> bool:
        return logo_id in (self.winner_id, self.loser_id)

    def as_json(self) -> dict[str, Any]:
        return {
            "winnerId": self.winner_id,
            "loserId": self.loser_id,
            "timestamp": self.timestamp,
            "voterHash": self.voter_hash,
        }


@dataclass(frozen=True)
class RatingState:
    """Ratings for every logo in a contest plus recent history, newest first.

    Engine functions never mutate a state; they return a new value, so callers
    can compare by identity to detect "nothing changed".
    """

    entries: dict[str, RatingEntry] = field(default_factory=dict)
    history: tuple[MatchRecord, ...] = ()

    @property
    def match_count(self) -> int:
        return len(self.history)

    def get_entry(self, logo_id: str) -> RatingEntry | None:
        return self.entries.get(logo_id)

    def as_json(self) -> dict[str, Any]:
        return {
            "entries": {logo_id: entry.as_json() for logo_id, entry in self.entries.items()},
            "history": [match.as_json() for match in self.history],
        }


@dataclass(frozen=True)
class ContestLedger:
    """Persisted state for one contest inside ``votes.json``."""

    state: RatingState
    updated_at: str

    def as_json(self) -> dict[str, Any]:
        return {"state": self.state.as_json(), "updatedAt": self.updated_at}


@dataclass(frozen=True)
class LogoEntry:
    """Roster row supplied by the logo catalog."""

    id: str
    contest_id: str = DEFAULT_CONTEST_ID
    name: str = ""
    codename: str = ""
    image: str = ""
    removed_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.removed_at is None


@dataclass(frozen=True)
class Contest:
    """Contest registry row."""

    id: str
    slug: str
    title: str
    status: str = "draft"


@dataclass(frozen=True)
class Matchup:
    """Two logos selected for the next comparison."""

    primary: LogoEntry
    challenger: LogoEntry

    @property
    def pair_key(self) -> tuple[str, str]:
        return create_pair_key(self.primary.id, self.challenger.id)


def create_pair_key(first_id: str, second_id: str) -> tuple[str, str]:
    """Order-independent key for an unordered pair of logos."""
    return (first_id, second_id) if first_id <= second_id else (second_id, first_id)


def empty_state() -> RatingState:
    return RatingState(entries={}, history=())


__all__ = [
    "Contest",
    "ContestLedger",
    "DEFAULT_CONTEST_ID",
    "DEFAULT_RATING",
    "HISTORY_LIMIT",
    "K_FACTOR",
    "LogoEntry",
    "MatchRecord",
    "Matchup",
    "RatingEntry",
    "RatingState",
    "create_pair_key",
    "empty_state",
]
