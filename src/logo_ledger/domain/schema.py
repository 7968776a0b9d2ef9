"""Parse and validate persisted ``votes.json`` documents.

Two layouts are accepted:

* the current multi-contest layout ``{"version": 2, "contests": {...}, "updatedAt": ...}``
* the legacy single-contest layout ``{"state": {...}, "updatedAt": ...}`` or a
  bare ``{"entries": ..., "history": ...}`` state, which is mapped onto the
  default contest.

Parsing is lenient at the record level: malformed entries and history rows are
dropped and listed in ``rejected`` instead of failing the whole document.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from logo_ledger.domain.ratings.common import (
    DEFAULT_CONTEST_ID,
    ContestLedger,
    MatchRecord,
    RatingEntry,
    RatingState,
)
from logo_ledger.domain.ratings.elo.calculator import normalize_voter_hash

VOTES_SCHEMA_VERSION = 2


@dataclass(frozen=True)
class RejectedRecord:
    location: str
    reason: str

    def __str__(self) -> str:
        return f"{self.location}: {self.reason}"


@dataclass(frozen=True)
class VotesDocument:
    """In-memory form of ``votes.json``."""

    contests: dict[str, ContestLedger] = field(default_factory=dict)
    updated_at: str = ""
    legacy: bool = False
    rejected: tuple[RejectedRecord, ...] = ()

    def with_contest(self, contest_id: str, ledger: ContestLedger) -> VotesDocument:
        contests = dict(self.contests)
        contests[contest_id] = ledger
        return VotesDocument(contests=contests, updated_at=ledger.updated_at)

    def as_json(self) -> dict[str, Any]:
        return {
            "version": VOTES_SCHEMA_VERSION,
            "contests": {contest_id: ledger.as_json() for contest_id, ledger in self.contests.items()},
            "updatedAt": self.updated_at,
        }


def parse_votes_document(
    data: Any,
    source: str,
    *,
    fallback_iso: str,
    default_contest_id: str = DEFAULT_CONTEST_ID,
) -> VotesDocument:
    """Turn decoded JSON into a :class:`VotesDocument`.

    Raises ``ValueError`` when *data* is not a JSON object at all.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Votes file {source} is not a JSON object.")

    rejected: list[RejectedRecord] = []
    updated_at = sanitize_iso(data.get("updatedAt"), fallback_iso)

    contests_raw = data.get("contests")
    if isinstance(data.get("version"), (int, float)) and isinstance(contests_raw, dict):
        contests: dict[str, ContestLedger] = {}
        for contest_id, value in contests_raw.items():
            location = f"{source}:contests.{contest_id}"
            if not isinstance(value, dict):
                rejected.append(RejectedRecord(location, "contest ledger is not an object"))
                continue
            contests[contest_id] = ContestLedger(
                state=parse_rating_state(value.get("state"), location, rejected),
                updated_at=sanitize_iso(value.get("updatedAt"), fallback_iso),
            )
        return VotesDocument(contests=contests, updated_at=updated_at, rejected=tuple(rejected))

    state_raw = data["state"] if "state" in data else data
    ledger = ContestLedger(
        state=parse_rating_state(state_raw, f"{source}:state", rejected),
        updated_at=updated_at,
    )
    return VotesDocument(
        contests={default_contest_id: ledger},
        updated_at=updated_at,
        legacy=True,
        rejected=tuple(rejected),
    )


def parse_rating_state(value: Any, location: str, rejected: list[RejectedRecord]) -> RatingState:
    if not isinstance(value, dict):
        return RatingState(entries={}, history=())

    entries: dict[str, RatingEntry] = {}
    entries_raw = value.get("entries")
    if isinstance(entries_raw, dict):
        for logo_id, raw_entry in entries_raw.items():
            entry = coerce_entry(raw_entry)
            if entry is None:
                rejected.append(RejectedRecord(f"{location}.entries.{logo_id}", "invalid rating entry"))
                continue
            entries[logo_id] = entry

    history: list[MatchRecord] = []
    history_raw = value.get("history")
    if isinstance(history_raw, list):
        for index, raw_match in enumerate(history_raw):
            match = coerce_match(raw_match)
            if match is None:
                rejected.append(RejectedRecord(f"{location}.history[{index}]", "invalid match record"))
                continue
            history.append(match)

    return RatingState(entries=entries, history=tuple(history))


def coerce_entry(value: Any) -> RatingEntry | None:
    if not isinstance(value, dict):
        return None
    numbers = [_as_number(value.get(key)) for key in ("rating", "wins", "losses", "matches")]
    if any(number is None for number in numbers):
        return None
    rating, wins, losses, matches = numbers
    return RatingEntry(rating=float(rating), wins=int(wins), losses=int(losses), matches=int(matches))


def coerce_match(value: Any) -> MatchRecord | None:
    if not isinstance(value, dict):
        return None
    winner_id = value.get("winnerId")
    loser_id = value.get("loserId")
    if not isinstance(winner_id, str) or not winner_id:
        return None
    if not isinstance(loser_id, str) or not loser_id:
        return None
    if winner_id == loser_id:
        return None
    timestamp = parse_timestamp(value.get("timestamp"))
    if timestamp is None:
        return None
    voter_hash = value.get("voterHash")
    return MatchRecord(
        winner_id=winner_id,
        loser_id=loser_id,
        timestamp=timestamp,
        voter_hash=normalize_voter_hash(voter_hash if isinstance(voter_hash, str) else None),
    )


def parse_timestamp(value: Any) -> int | None:
    """Epoch milliseconds from a number or an ISO-8601 string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        moment = _parse_iso(value)
        if moment is not None:
            return int(moment.timestamp() * 1000)
    return None


def sanitize_iso(value: Any, fallback: str) -> str:
    if isinstance(value, str) and _parse_iso(value) is not None:
        return value
    return fallback


def _parse_iso(value: str) -> datetime | None:
    try:
        moment = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


__all__ = [
    "RejectedRecord",
    "VOTES_SCHEMA_VERSION",
    "VotesDocument",
    "coerce_entry",
    "coerce_match",
    "parse_rating_state",
    "parse_timestamp",
    "parse_votes_document",
    "sanitize_iso",
]
