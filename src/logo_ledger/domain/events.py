"""Audit trail event types and their JSON line encoding."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from logo_ledger.domain.ratings.common import LogoEntry, RatingEntry

VOTE_RECORDED = "vote-recorded"
VOTES_RESET = "votes-reset"


@dataclass(frozen=True)
class ParticipantSnapshot:
    """One logo's record immediately before and after a vote."""

    id: str
    name: str
    codename: str
    rating_before: float
    rating_after: float
    wins_before: int
    wins_after: int
    losses_before: int
    losses_after: int
    matches_before: int
    matches_after: int

    @classmethod
    def capture(cls, logo: LogoEntry, before: RatingEntry, after: RatingEntry) -> ParticipantSnapshot:
        return cls(
            id=logo.id,
            name=logo.name,
            codename=logo.codename,
            rating_before=before.rating,
            rating_after=after.rating,
            wins_before=before.wins,
            wins_after=after.wins,
            losses_before=before.losses,
            losses_after=after.losses,
            matches_before=before.matches,
            matches_after=after.matches,
        )

    def as_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "codename": self.codename,
            "ratingBefore": self.rating_before,
            "ratingAfter": self.rating_after,
            "winsBefore": self.wins_before,
            "winsAfter": self.wins_after,
            "lossesBefore": self.losses_before,
            "lossesAfter": self.losses_after,
            "matchesBefore": self.matches_before,
            "matchesAfter": self.matches_after,
        }


@dataclass(frozen=True)
class VoteRecorded:
    id: str
    occurred_at: str
    contest_id: str
    voter_hash: str | None
    match_timestamp: int
    match_history_length: int
    winner: ParticipantSnapshot
    loser: ParticipantSnapshot
    type: Literal["vote-recorded"] = VOTE_RECORDED

    def as_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "occurredAt": self.occurred_at,
            "contestId": self.contest_id,
            "voterHash": self.voter_hash,
            "matchTimestamp": self.match_timestamp,
            "matchHistoryLength": self.match_history_length,
            "winner": self.winner.as_json(),
            "loser": self.loser.as_json(),
        }


@dataclass(frozen=True)
class VotesReset:
    id: str
    occurred_at: str
    contest_id: str
    initiator: str | None
    reason: str
    previous_match_count: int
    type: Literal["votes-reset"] = VOTES_RESET

    def as_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "occurredAt": self.occurred_at,
            "contestId": self.contest_id,
            "initiator": self.initiator,
            "reason": self.reason,
            "previousMatchCount": self.previous_match_count,
        }


AuditEvent = VoteRecorded | VotesReset


def new_event_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return format_epoch_ms(int(datetime.now(UTC).timestamp() * 1000))


def format_epoch_ms(epoch_ms: int) -> str:
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_audit_event(raw: Any) -> AuditEvent:
    """Decode one JSON object from the audit trail.

    Raises ``ValueError`` for anything that is not a well-formed event.
    """
    if not isinstance(raw, dict):
        raise ValueError("audit event must be a JSON object")

    event_type = raw.get("type")
    if event_type == VOTE_RECORDED:
        return VoteRecorded(
            id=_require_str(raw, "id"),
            occurred_at=_require_str(raw, "occurredAt"),
            contest_id=_require_str(raw, "contestId"),
            voter_hash=_optional_str(raw.get("voterHash")),
            match_timestamp=_require_int(raw, "matchTimestamp"),
            match_history_length=_require_int(raw, "matchHistoryLength"),
            winner=_parse_snapshot(raw.get("winner"), "winner"),
            loser=_parse_snapshot(raw.get("loser"), "loser"),
        )
    if event_type == VOTES_RESET:
        return VotesReset(
            id=_require_str(raw, "id"),
            occurred_at=_require_str(raw, "occurredAt"),
            contest_id=_require_str(raw, "contestId"),
            initiator=_optional_str(raw.get("initiator")),
            reason=str(raw.get("reason") or "manual-reset"),
            previous_match_count=_require_int(raw, "previousMatchCount"),
        )
    raise ValueError(f"unknown audit event type: {event_type!r}")


def _parse_snapshot(raw: Any, label: str) -> ParticipantSnapshot:
    if not isinstance(raw, dict):
        raise ValueError(f"{label} snapshot must be a JSON object")
    return ParticipantSnapshot(
        id=_require_str(raw, "id"),
        name=str(raw.get("name") or ""),
        codename=str(raw.get("codename") or ""),
        rating_before=_require_float(raw, "ratingBefore"),
        rating_after=_require_float(raw, "ratingAfter"),
        wins_before=_require_int(raw, "winsBefore"),
        wins_after=_require_int(raw, "winsAfter"),
        losses_before=_require_int(raw, "lossesBefore"),
        losses_after=_require_int(raw, "lossesAfter"),
        matches_before=_require_int(raw, "matchesBefore"),
        matches_after=_require_int(raw, "matchesAfter"),
    )


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value.strip()


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _require_int(raw: dict[str, Any], key: str) -> int:
    _require_float(raw, key)
    return int(raw[key])


def _require_float(raw: dict[str, Any], key: str) -> float:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    if not math.isfinite(value):
        raise ValueError(f"{key} must be finite")
    return float(value)


__all__ = [
    "AuditEvent",
    "ParticipantSnapshot",
    "VOTES_RESET",
    "VOTE_RECORDED",
    "VoteRecorded",
    "VotesReset",
    "format_epoch_ms",
    "new_event_id",
    "parse_audit_event",
    "utc_now_iso",
]
