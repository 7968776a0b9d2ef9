"""CLI for merging vote exports captured on separate servers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer

from logo_ledger.config import load_ledger_config
from logo_ledger.domain.merge import MergeOptions, MergeReport, describe_time_range, run_merge
from logo_ledger.exceptions import LedgerError
from logo_ledger.logging_utils import setup_logging

LOGGER = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Merge vote JSON exports into a single votes.json by replaying every match.",
)


def print_report(report: MergeReport) -> None:
    typer.echo(f"files_read={report.files_read} contests={len(report.summaries)}")
    for summary in report.summaries:
        typer.echo(
            f"contest={summary.contest_id} "
            f"matches_applied={summary.matches_applied} "
            f"duplicates_skipped={summary.duplicates_skipped}"
        )
        time_range = describe_time_range(summary)
        if time_range is not None:
            typer.echo(f"  time_range={time_range}")
        if summary.missing_history_estimate:
            typer.echo(f"  missing_history_estimate={summary.missing_history_estimate}")
        for warning in summary.warnings:
            typer.echo(f"  warning: {warning}", err=True)

    for warning in report.warnings:
        typer.echo(f"warning: {warning}", err=True)

    if report.written_to is None:
        typer.echo("[dry-run] merged votes file not written")
    else:
        typer.echo(f"output={report.written_to}")


@app.command()
def merge(
    input_dir: Annotated[
        Path,
        typer.Option("--input", help="Directory containing vote JSON files to merge."),
    ],
    output_path: Annotated[
        Path | None,
        typer.Option("--output", help="Path for the merged votes.json (default: <data dir>/votes.json)."),
    ] = None,
    logos_path: Annotated[
        Path | None,
        typer.Option("--logos", help="Path to logos.json for roster alignment (default: <data dir>/logos.json)."),
    ] = None,
    contests: Annotated[
        list[str] | None,
        typer.Option("--contest", help="Only merge this contest id. Repeatable."),
    ] = None,
    max_history: Annotated[
        int | None,
        typer.Option("--max-history", help="History records to keep per contest; 0 or negative keeps all."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Optional ledger TOML config."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Compute results without writing the output file."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Print detailed processing logs."),
    ] = False,
) -> None:
    """Merge every *.json export in --input."""
    setup_logging("DEBUG" if verbose else "WARNING")

    try:
        config = load_ledger_config(config_path)
        contest_filter = frozenset(contest.strip() for contest in contests or [] if contest.strip())
        options = MergeOptions(
            input_dir=input_dir.resolve(),
            output_path=(output_path or config.votes_path).resolve(),
            logos_path=(logos_path or config.logos_path).resolve(),
            contest_filter=contest_filter or None,
            max_history=config.history_limit if max_history is None else max_history,
            dry_run=dry_run,
            params=config.elo,
        )
        LOGGER.debug("Loading vote files from %s", options.input_dir)
        report = run_merge(options)
    except (LedgerError, OSError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    print_report(report)


if __name__ == "__main__":
    app()
