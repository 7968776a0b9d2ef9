"""Per-contest rating ledger backed by ``votes.json`` and the audit trail."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from logo_ledger.config import LedgerConfig
from logo_ledger.domain.events import ParticipantSnapshot, format_epoch_ms
from logo_ledger.domain.protocol import Clock, ContestRegistry, LogoCatalog
from logo_ledger.domain.ratings.common import (
    ContestLedger,
    LogoEntry,
    Matchup,
    RatingState,
    empty_state,
)
from logo_ledger.domain.ratings.elo.calculator import (
    apply_match,
    blank_state,
    current_epoch_ms,
    ensure_entries,
    normalize_voter_hash,
    prune_entries,
)
from logo_ledger.domain.ratings.matchup import produce_matchup
from logo_ledger.domain.reconciliation import (
    LeaderboardRow,
    RecalculationResult,
    build_leaderboard,
    diff_entries,
    find_integrity_issues,
    matches_since_last_reset,
    replay_events,
)
from logo_ledger.domain.schema import VotesDocument, parse_votes_document
from logo_ledger.exceptions import VoteValidationError
from logo_ledger.repositories.audit_log import AuditLog
from logo_ledger.repositories.persistence import (
    BackupThrottler,
    backup_file,
    get_file_lock,
    read_latest_backup,
    restore_latest_backup,
    write_json_with_backup,
)
from logo_ledger.repositories.roster import JsonContestRegistry, JsonLogoCatalog

LOGGER = logging.getLogger(__name__)

VOTES_BACKUP_PREFIX = "votes"


@dataclass(frozen=True)
class ContestMetrics:
    contest_id: str
    logo_count: int
    match_count: int
    last_match_at: str | None
    leaderboard: tuple[LeaderboardRow, ...] = ()

    def as_json(self) -> dict[str, Any]:
        return {
            "contestId": self.contest_id,
            "logoCount": self.logo_count,
            "matchCount": self.match_count,
            "lastMatchAt": self.last_match_at,
            "leaderboard": [row.as_json() for row in self.leaderboard],
        }


@dataclass(frozen=True)
class _EnsuredLedger:
    state: RatingState
    changed: bool
    removed_data: bool


class VoteStore:
    """Read-modify-write access to contest ledgers.

    Every mutating sequence holds the contest lock and the ``votes.json`` file
    lock, so concurrent callers in one process never lose updates.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        catalog: LogoCatalog,
        registry: ContestRegistry,
        config: LedgerConfig | None = None,
        clock: Clock = current_epoch_ms,
        throttler: BackupThrottler | None = None,
    ) -> None:
        self.data_dir = data_dir
        self.config = replace(config, data_dir=data_dir) if config is not None else LedgerConfig(data_dir=data_dir)
        self.votes_path = self.config.votes_path
        self.backup_root = self.config.backup_root
        self.audit_log = AuditLog(self.config.events_path, clock=clock)
        self._catalog = catalog
        self._registry = registry
        self._clock = clock
        self._throttler = throttler or BackupThrottler()
        self._contest_locks: dict[str, threading.Lock] = {}
        self._contest_locks_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        *,
        clock: Clock = current_epoch_ms,
        throttler: BackupThrottler | None = None,
    ) -> VoteStore:
        return cls(
            config.data_dir,
            catalog=JsonLogoCatalog(config.logos_path),
            registry=JsonContestRegistry(config.contests_path, config.default_contest_id),
            config=config,
            clock=clock,
            throttler=throttler,
        )

    def get_ledger(self, contest_id: str | None = None) -> RatingState:
        """Current state for a contest, aligned with its active roster."""
        contest = self._registry.resolve(contest_id)
        roster_ids = self._roster_ids(self._catalog.active_logos(contest.id))

        with self._locked(contest.id):
            document = self._load_document()
            ensured = self._ensure_contest(document, contest.id, roster_ids)
            if ensured.changed:
                if ensured.removed_data:
                    self._snapshot_current_file()
                self._persist(self._with_state(document, contest.id, ensured.state))
            return ensured.state

    def record_vote(
        self,
        winner_id: str,
        loser_id: str,
        voter_hash: str | None = None,
        contest_id: str | None = None,
    ) -> RatingState:
        winner_id = (winner_id or "").strip()
        loser_id = (loser_id or "").strip()
        if not winner_id or not loser_id:
            raise VoteValidationError("Both winner_id and loser_id are required.")
        if winner_id == loser_id:
            raise VoteValidationError("A logo cannot win against itself.")

        contest = self._registry.resolve(contest_id)
        logos = self._catalog.active_logos(contest.id)
        logos_by_id = {logo.id: logo for logo in logos}
        for logo_id in (winner_id, loser_id):
            if logo_id not in logos_by_id:
                raise VoteValidationError(f"Logo {logo_id} is not an active entry in contest {contest.id}.")

        with self._locked(contest.id):
            document = self._load_document()
            ensured = self._ensure_contest(document, contest.id, list(logos_by_id))
            if ensured.removed_data:
                self._snapshot_current_file()
            state = ensured.state

            timestamp = self._clock()
            next_state = apply_match(
                state,
                winner_id,
                loser_id,
                voter_hash,
                timestamp=timestamp,
                params=self.config.elo,
                history_limit=self.config.history_limit,
            )
            self._persist(self._with_state(document, contest.id, next_state))

            self.audit_log.log_vote_recorded(
                contest_id=contest.id,
                voter_hash=normalize_voter_hash(voter_hash),
                match_timestamp=timestamp,
                match_history_length=next_state.match_count,
                winner=ParticipantSnapshot.capture(
                    logos_by_id[winner_id], state.entries[winner_id], next_state.entries[winner_id]
                ),
                loser=ParticipantSnapshot.capture(
                    logos_by_id[loser_id], state.entries[loser_id], next_state.entries[loser_id]
                ),
            )

        LOGGER.debug("Recorded vote %s > %s in %s", winner_id, loser_id, contest.id)
        return next_state

    def reset_contest_votes(
        self,
        contest_id: str | None = None,
        *,
        initiator: str | None = None,
        reason: str = "manual-reset",
    ) -> RatingState:
        """Blank every rating in a contest. Earlier files stay in backups."""
        contest = self._registry.resolve(contest_id)
        roster_ids = self._roster_ids(self._catalog.active_logos(contest.id))

        with self._locked(contest.id):
            document = self._load_document()
            previous = document.contests.get(contest.id)
            previous_match_count = previous.state.match_count if previous is not None else 0

            self._snapshot_current_file()
            state = blank_state(roster_ids, self.config.elo)
            self._persist(self._with_state(document, contest.id, state), force_backup=True)

            self.audit_log.log_votes_reset(
                contest_id=contest.id,
                previous_match_count=previous_match_count,
                initiator=initiator,
                reason=reason,
            )

        LOGGER.info("Reset contest %s (%d matches discarded)", contest.id, previous_match_count)
        return state

    def get_metrics(self, contest_id: str | None = None, *, leaderboard_size: int | None = None) -> ContestMetrics:
        contest = self._registry.resolve(contest_id)
        logos = self._catalog.active_logos(contest.id)
        state = self.get_ledger(contest.id)
        size = self.config.leaderboard_size if leaderboard_size is None else leaderboard_size

        return ContestMetrics(
            contest_id=contest.id,
            logo_count=len(logos),
            match_count=state.match_count,
            last_match_at=format_epoch_ms(state.history[0].timestamp) if state.history else None,
            leaderboard=tuple(build_leaderboard(state.entries, logos, size)),
        )

    def recalculate(self, contest_id: str | None = None, *, dry_run: bool = True) -> RecalculationResult:
        """Replay the audit trail and compare it with the stored ledger.

        ``dry_run=True`` never writes. Otherwise detected drift is persisted
        after a forced backup.
        """
        contest = self._registry.resolve(contest_id)
        logos = self._catalog.active_logos(contest.id)
        roster_ids = self._roster_ids(logos)

        with self._locked(contest.id):
            document = self._load_document(writable=not dry_run)
            current = self._ensure_contest(document, contest.id, roster_ids).state

            events = list(self.audit_log.iter_events(contest.id))
            rejected_events = len(self.audit_log.rejected)
            skipped: list[str] = []
            proposed = replay_events(
                events,
                roster_ids,
                self.config.elo,
                self.config.history_limit,
                skipped=skipped,
            )
            for message in skipped:
                LOGGER.warning("Skipped audit event during replay: %s", message)

            differences = diff_entries(current.entries, proposed.entries, self.config.elo)
            changes_detected = bool(differences)

            applied = False
            if changes_detected and not dry_run:
                self._snapshot_current_file()
                self._persist(self._with_state(document, contest.id, proposed), force_backup=True)
                applied = True

        result = RecalculationResult(
            contest_id=contest.id,
            dry_run=dry_run,
            applied=applied,
            changes_detected=changes_detected,
            total_matches=matches_since_last_reset(events),
            last_match_at=format_epoch_ms(proposed.history[0].timestamp) if proposed.history else None,
            differences=tuple(differences),
            proposed_leaderboard=tuple(build_leaderboard(proposed.entries, logos, self.config.leaderboard_size)),
            integrity_issues=tuple(find_integrity_issues(current.entries)),
            rejected_events=rejected_events,
        )
        LOGGER.info(
            "Recalculated %s: dry_run=%s changes=%d applied=%s",
            contest.id,
            dry_run,
            len(differences),
            applied,
        )
        return result

    def next_matchup(self, contest_id: str | None = None, previous: Matchup | None = None) -> Matchup | None:
        contest = self._registry.resolve(contest_id)
        logos = self._catalog.active_logos(contest.id)
        state = self.get_ledger(contest.id)
        return produce_matchup(logos, state.entries, previous, params=self.config.elo)

    def restore_latest_backup(self) -> bool:
        with get_file_lock(self.votes_path):
            return restore_latest_backup(self.backup_root, VOTES_BACKUP_PREFIX, self.votes_path)

    @contextmanager
    def _locked(self, contest_id: str) -> Iterator[None]:
        with self._contest_locks_lock:
            lock = self._contest_locks.setdefault(contest_id, threading.Lock())
        with lock, get_file_lock(self.votes_path):
            yield

    @staticmethod
    def _roster_ids(logos: Sequence[LogoEntry]) -> list[str]:
        return [logo.id for logo in logos]

    def _now_iso(self) -> str:
        return format_epoch_ms(self._clock())

    def _ensure_contest(self, document: VotesDocument, contest_id: str, roster_ids: list[str]) -> _EnsuredLedger:
        existing = document.contests.get(contest_id)
        current = existing.state if existing is not None else empty_state()
        ensured = ensure_entries(current, roster_ids, self.config.elo)
        pruned = prune_entries(ensured, roster_ids)
        return _EnsuredLedger(
            state=pruned,
            changed=existing is None or ensured is not current or pruned is not ensured,
            removed_data=pruned is not ensured,
        )

    def _with_state(self, document: VotesDocument, contest_id: str, state: RatingState) -> VotesDocument:
        return document.with_contest(contest_id, ContestLedger(state=state, updated_at=self._now_iso()))

    def _persist(self, document: VotesDocument, *, force_backup: bool = False) -> Path | None:
        return write_json_with_backup(
            self.votes_path,
            document.as_json(),
            backup_root=self.backup_root,
            prefix=VOTES_BACKUP_PREFIX,
            throttler=self._throttler,
            now_ms=self._clock(),
            min_interval_ms=self.config.backups.min_interval_ms,
            max_retained=self.config.backups.max_retained,
            force_backup=force_backup,
        )

    def _snapshot_current_file(self) -> Path | None:
        return backup_file(
            self.votes_path,
            backup_root=self.backup_root,
            prefix=VOTES_BACKUP_PREFIX,
            throttler=self._throttler,
            now_ms=self._clock(),
            max_retained=self.config.backups.max_retained,
        )

    def _read_document(self, raw: str | bytes | None = None, source: Path | None = None) -> VotesDocument:
        if raw is None:
            raw = self.votes_path.read_text(encoding="utf-8")
        return parse_votes_document(
            json.loads(raw),
            str(source or self.votes_path),
            fallback_iso=self._now_iso(),
            default_contest_id=self.config.default_contest_id,
        )

    def _load_document(self, *, writable: bool = True) -> VotesDocument:
        """Read ``votes.json``, recovering from corruption where possible.

        A missing file yields an empty document. An unreadable file is replaced
        by the newest parseable backup; failing that, by a freshly seeded file.
        With ``writable=False`` nothing on disk changes: the backup is only read
        and legacy files are left unmigrated.
        """
        if not self.votes_path.exists():
            return VotesDocument(contests={}, updated_at=self._now_iso())

        try:
            document = self._read_document()
        except (OSError, ValueError) as exc:
            LOGGER.warning("Failed to read votes file %s: %s", self.votes_path, exc)
            document = self._recover_document() if writable else self._peek_backup_document()

        for record in document.rejected:
            LOGGER.warning("Dropped malformed votes record %s", record)

        if document.legacy and writable:
            LOGGER.info("Migrating legacy votes file %s to schema v2", self.votes_path)
            document = VotesDocument(contests=document.contests, updated_at=self._now_iso())
            self._persist(document)
        return document

    def _recover_document(self) -> VotesDocument:
        if restore_latest_backup(self.backup_root, VOTES_BACKUP_PREFIX, self.votes_path):
            try:
                return self._read_document()
            except (OSError, ValueError) as exc:
                LOGGER.warning("Restored votes file is still unreadable: %s", exc)

        LOGGER.warning("No usable backup for %s; starting a new ledger file", self.votes_path)
        seeded = VotesDocument(contests={}, updated_at=self._now_iso())
        self._persist(seeded)
        return seeded

    def _peek_backup_document(self) -> VotesDocument:
        found = read_latest_backup(self.backup_root, VOTES_BACKUP_PREFIX)
        if found is not None:
            backup_path, payload = found
            try:
                return self._read_document(payload, backup_path)
            except ValueError as exc:
                LOGGER.warning("Backup %s is not a votes document: %s", backup_path, exc)
        return VotesDocument(contests={}, updated_at=self._now_iso())


__all__ = ["ContestMetrics", "VOTES_BACKUP_PREFIX", "VoteStore"]
