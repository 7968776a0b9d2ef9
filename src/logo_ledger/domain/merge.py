"""Merge independently captured ``votes.json`` exports into one ledger.

Every export's history is pooled per contest, de-duplicated, sorted by match
time and replayed from scratch, so the merged ratings are exactly what a
single server would have produced had it seen every vote.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from logo_ledger.domain.events import format_epoch_ms, utc_now_iso
from logo_ledger.domain.ratings.common import (
    HISTORY_LIMIT,
    ContestLedger,
    MatchRecord,
    RatingState,
    empty_state,
)
from logo_ledger.domain.ratings.elo.calculator import (
    DEFAULT_PARAMETERS,
    EloParameters,
    ensure_entries,
    normalize_voter_hash,
    replay_matches,
)
from logo_ledger.domain.schema import VotesDocument, parse_timestamp, parse_votes_document
from logo_ledger.exceptions import MergeError
from logo_ledger.repositories.persistence import atomic_write_text, dump_json
from logo_ledger.repositories.roster import group_active_logos, load_logos_file

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedExport:
    source: str
    document: VotesDocument


@dataclass
class ContestAggregation:
    matches: list[MatchRecord] = field(default_factory=list)
    latest_updated_at: str = ""
    duplicate_count: int = 0
    inferred_entry_matches: int = 0

    @property
    def unique_match_count(self) -> int:
        return len(self.matches)


@dataclass(frozen=True)
class MergeSummary:
    contest_id: str
    state: RatingState
    matches_applied: int
    duplicates_skipped: int
    warnings: tuple[str, ...] = ()
    earliest_timestamp: int | None = None
    latest_timestamp: int | None = None
    missing_history_estimate: int | None = None


@dataclass(frozen=True)
class MergeOptions:
    input_dir: Path
    output_path: Path
    logos_path: Path | None = None
    contest_filter: frozenset[str] | None = None
    max_history: int = HISTORY_LIMIT
    dry_run: bool = False
    params: EloParameters = DEFAULT_PARAMETERS


@dataclass(frozen=True)
class MergeReport:
    document: VotesDocument
    summaries: tuple[MergeSummary, ...]
    warnings: tuple[str, ...]
    files_read: int
    written_to: Path | None


def parse_votes_export(data: Any, source: str, *, fallback_iso: str | None = None) -> ParsedExport:
    document = parse_votes_document(data, source, fallback_iso=fallback_iso or utc_now_iso())
    return ParsedExport(source=source, document=document)


def aggregate_exports(
    exports: Iterable[ParsedExport],
    contest_filter: frozenset[str] | set[str] | None = None,
) -> dict[str, ContestAggregation]:
    """Pool history per contest, dropping exact duplicates across files."""
    aggregations: dict[str, ContestAggregation] = {}
    seen_by_contest: dict[str, set[str]] = {}

    for export in exports:
        for contest_id, ledger in export.document.contests.items():
            if contest_filter and contest_id not in contest_filter:
                continue

            bucket = aggregations.get(contest_id)
            if bucket is None:
                bucket = ContestAggregation(latest_updated_at=ledger.updated_at)
                aggregations[contest_id] = bucket
                seen_by_contest[contest_id] = set()
            elif _iso_sort_key(ledger.updated_at) > _iso_sort_key(bucket.latest_updated_at):
                bucket.latest_updated_at = ledger.updated_at

            for entry in ledger.state.entries.values():
                bucket.inferred_entry_matches = max(bucket.inferred_entry_matches, entry.matches)

            seen = seen_by_contest[contest_id]
            for match in ledger.state.history:
                key = match.dedupe_key
                if key in seen:
                    bucket.duplicate_count += 1
                    continue
                seen.add(key)
                bucket.matches.append(match)

    return aggregations


def merge_contest(
    contest_id: str,
    aggregation: ContestAggregation,
    roster: Sequence[str] = (),
    max_history: int = HISTORY_LIMIT,
    params: EloParameters = DEFAULT_PARAMETERS,
) -> MergeSummary:
    """Replay one contest's pooled matches in time order from a blank state.

    ``max_history <= 0`` keeps the full merged history.
    """
    if not aggregation.matches:
        return MergeSummary(
            contest_id=contest_id,
            state=ensure_entries(empty_state(), roster, params),
            matches_applied=0,
            duplicates_skipped=aggregation.duplicate_count,
            warnings=(f"No matches found for contest {contest_id}.",),
        )

    duplicates = aggregation.duplicate_count
    seen: set[str] = set()
    unique_matches: list[MatchRecord] = []
    for match in sorted(aggregation.matches, key=lambda record: record.sort_key):
        normalized = MatchRecord(
            winner_id=match.winner_id,
            loser_id=match.loser_id,
            timestamp=match.timestamp,
            voter_hash=normalize_voter_hash(match.voter_hash),
        )
        if normalized.dedupe_key in seen:
            duplicates += 1
            continue
        seen.add(normalized.dedupe_key)
        unique_matches.append(normalized)

    state = replay_matches(
        unique_matches,
        start=ensure_entries(empty_state(), roster, params),
        params=params,
        history_limit=max_history,
    )
    state = ensure_entries(state, roster, params)

    warnings: list[str] = []
    missing = aggregation.inferred_entry_matches - len(unique_matches)
    missing_history = missing if missing > 0 else None
    if missing_history is not None:
        warnings.append(
            f"Contest {contest_id} may have lost {missing_history} matches because history files were "
            f"truncated. Final ratings recomputed from available {len(unique_matches)} matches."
        )

    return MergeSummary(
        contest_id=contest_id,
        state=state,
        matches_applied=len(unique_matches),
        duplicates_skipped=duplicates,
        warnings=tuple(warnings),
        earliest_timestamp=unique_matches[0].timestamp,
        latest_timestamp=unique_matches[-1].timestamp,
        missing_history_estimate=missing_history,
    )


def list_export_files(input_dir: Path) -> list[Path]:
    if not input_dir.is_dir():
        raise MergeError(f"{input_dir} is not a directory")
    return sorted(
        path for path in input_dir.iterdir() if path.is_file() and path.name.lower().endswith(".json")
    )


def load_exports(files: Sequence[Path], warnings: list[str]) -> list[ParsedExport]:
    """Parse each file; unreadable ones become warnings instead of errors."""
    exports: list[ParsedExport] = []
    for path in files:
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            export = parse_votes_export(data, str(path))
        except (OSError, ValueError) as exc:
            warnings.append(f"Failed to process {path}: {exc}")
            continue
        if export.document.rejected:
            warnings.append(f"{path}: skipped {len(export.document.rejected)} malformed records")
        LOGGER.debug("Parsed %s (%d contests)", path, len(export.document.contests))
        exports.append(export)
    return exports


def load_roster(logos_path: Path | None, warnings: list[str]) -> Mapping[str, list[str]]:
    if logos_path is None:
        return {}
    try:
        logos = load_logos_file(logos_path)
    except (OSError, ValueError) as exc:
        warnings.append(
            f"Failed to load logos from {logos_path}: {exc}. Continuing without roster alignment."
        )
        return {}
    return {
        contest_id: [logo.id for logo in contest_logos]
        for contest_id, contest_logos in group_active_logos(logos).items()
    }


def run_merge(options: MergeOptions) -> MergeReport:
    """Merge every export in ``options.input_dir`` into one v2 votes file."""
    warnings: list[str] = []
    files = list_export_files(options.input_dir)
    if not files:
        raise MergeError(f"No vote JSON files found in {options.input_dir}")

    exports = load_exports(files, warnings)
    aggregations = aggregate_exports(exports, options.contest_filter)
    if not aggregations:
        raise MergeError("No contests found in provided vote files.")

    roster = load_roster(options.logos_path, warnings)

    summaries: list[MergeSummary] = []
    contests: dict[str, ContestLedger] = {}
    for contest_id, aggregation in aggregations.items():
        summary = merge_contest(
            contest_id,
            aggregation,
            roster.get(contest_id, []),
            options.max_history,
            options.params,
        )
        contests[contest_id] = ContestLedger(state=summary.state, updated_at=aggregation.latest_updated_at)
        summaries.append(summary)

    document = VotesDocument(contests=contests, updated_at=utc_now_iso())

    written_to: Path | None = None
    if options.dry_run:
        LOGGER.info("Dry run: not writing %s", options.output_path)
    else:
        atomic_write_text(options.output_path, dump_json(document.as_json()))
        written_to = options.output_path
        LOGGER.info("Merged votes written to %s", options.output_path)

    return MergeReport(
        document=document,
        summaries=tuple(summaries),
        warnings=tuple(warnings),
        files_read=len(files),
        written_to=written_to,
    )


def describe_time_range(summary: MergeSummary) -> str | None:
    if summary.earliest_timestamp is None or summary.latest_timestamp is None:
        return None
    return f"{format_epoch_ms(summary.earliest_timestamp)} - {format_epoch_ms(summary.latest_timestamp)}"


def _iso_sort_key(value: str) -> int:
    return parse_timestamp(value) or 0


__all__ = [
    "ContestAggregation",
    "MergeOptions",
    "MergeReport",
    "MergeSummary",
    "ParsedExport",
    "aggregate_exports",
    "describe_time_range",
    "list_export_files",
    "load_exports",
    "load_roster",
    "merge_contest",
    "parse_votes_export",
    "run_merge",
]
