"""Append-only NDJSON audit trail of vote and reset events."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from logo_ledger.domain.events import (
    AuditEvent,
    ParticipantSnapshot,
    VoteRecorded,
    VotesReset,
    format_epoch_ms,
    new_event_id,
    parse_audit_event,
)
from logo_ledger.domain.protocol import Clock
from logo_ledger.domain.ratings.elo.calculator import current_epoch_ms
from logo_ledger.domain.schema import RejectedRecord
from logo_ledger.exceptions import PersistenceError

LOGGER = logging.getLogger(__name__)


@dataclass
class AuditLog:
    """One event per line; lines are never rewritten."""

    path: Path
    rejected: list[RejectedRecord] = field(default_factory=list)
    clock: Clock = current_epoch_ms

    def append(self, event: AuditEvent) -> None:
        line = json.dumps(event.as_json(), ensure_ascii=False) + "\n"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        except OSError as exc:
            raise PersistenceError(f"Failed to append audit event to {self.path}: {exc}") from exc

    def iter_events(self, contest_id: str | None = None) -> Iterator[AuditEvent]:
        """Yield events in file order, optionally for one contest.

        Malformed lines are skipped and collected in :attr:`rejected`.
        """
        self.rejected = []
        if not self.path.exists():
            return

        with self.path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    event = parse_audit_event(json.loads(line))
                except ValueError as exc:
                    record = RejectedRecord(f"{self.path.name}:{line_number}", str(exc))
                    self.rejected.append(record)
                    LOGGER.warning("Skipping malformed audit event %s", record)
                    continue
                if contest_id is not None and event.contest_id != contest_id:
                    continue
                yield event

    def log_vote_recorded(
        self,
        *,
        contest_id: str,
        voter_hash: str | None,
        match_timestamp: int,
        match_history_length: int,
        winner: ParticipantSnapshot,
        loser: ParticipantSnapshot,
    ) -> VoteRecorded:
        event = VoteRecorded(
            id=new_event_id(),
            occurred_at=format_epoch_ms(self.clock()),
            contest_id=contest_id,
            voter_hash=voter_hash,
            match_timestamp=match_timestamp,
            match_history_length=match_history_length,
            winner=winner,
            loser=loser,
        )
        self.append(event)
        return event

    def log_votes_reset(
        self,
        *,
        contest_id: str,
        previous_match_count: int,
        initiator: str | None = None,
        reason: str = "manual-reset",
    ) -> VotesReset:
        event = VotesReset(
            id=new_event_id(),
            occurred_at=format_epoch_ms(self.clock()),
            contest_id=contest_id,
            initiator=initiator,
            reason=reason,
            previous_match_count=previous_match_count,
        )
        self.append(event)
        return event


__all__ = ["AuditLog"]
