"""Administrative commands for a running ledger data directory."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from logo_ledger.config import LedgerConfig, load_ledger_config
from logo_ledger.exceptions import LedgerError
from logo_ledger.logging_utils import setup_logging
from logo_ledger.repositories.vote_store import VoteStore

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Inspect, reconcile and reset contest vote ledgers.",
)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Optional ledger TOML config."),
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Override the data directory from config and DATA_DIR."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log debug output to stderr."),
    ] = False,
) -> None:
    setup_logging("DEBUG" if verbose else "WARNING")
    try:
        config = load_ledger_config(config_path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc
    if data_dir is not None:
        config = replace(config, data_dir=data_dir.resolve())
    ctx.obj = config


def _store(ctx: typer.Context) -> VoteStore:
    config: LedgerConfig = ctx.obj
    return VoteStore.from_config(config)


def _fail(exc: Exception) -> typer.Exit:
    typer.echo(f"error: {exc}", err=True)
    return typer.Exit(code=1)


@app.command()
def recalculate(
    ctx: typer.Context,
    contest: Annotated[
        str | None,
        typer.Option("--contest", help="Contest id (default: the active contest)."),
    ] = None,
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Persist recalculated ratings instead of previewing them."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the full result as JSON."),
    ] = False,
) -> None:
    """Replay the audit trail and report rating drift."""
    try:
        result = _store(ctx).recalculate(contest, dry_run=not apply)
    except LedgerError as exc:
        raise _fail(exc) from exc

    if as_json:
        typer.echo(json.dumps(result.as_json(), indent=2))
        return

    typer.echo(
        f"contest={result.contest_id} "
        f"dry_run={result.dry_run} "
        f"applied={result.applied} "
        f"changes={len(result.differences)} "
        f"total_matches={result.total_matches} "
        f"last_match_at={result.last_match_at or '-'}"
    )
    for difference in result.differences:
        typer.echo(
            f"  logo={difference.logo_id} "
            f"rating={difference.rating_before:.2f}->{difference.rating_after:.2f} "
            f"wins={difference.wins_before}->{difference.wins_after} "
            f"losses={difference.losses_before}->{difference.losses_after} "
            f"matches={difference.matches_before}->{difference.matches_after}"
        )
    for issue in result.integrity_issues:
        typer.echo(f"  integrity: {issue}", err=True)
    typer.echo(result.message)


@app.command()
def leaderboard(
    ctx: typer.Context,
    contest: Annotated[
        str | None,
        typer.Option("--contest", help="Contest id (default: the active contest)."),
    ] = None,
    size: Annotated[
        int | None,
        typer.Option("--size", help="Number of rows to print."),
    ] = None,
) -> None:
    """Print contest metrics and the top-rated logos."""
    if size is not None and size <= 0:
        raise typer.BadParameter("--size must be greater than 0")

    try:
        metrics = _store(ctx).get_metrics(contest, leaderboard_size=size)
    except LedgerError as exc:
        raise _fail(exc) from exc

    typer.echo(
        f"contest={metrics.contest_id} "
        f"logos={metrics.logo_count} "
        f"matches={metrics.match_count} "
        f"last_match_at={metrics.last_match_at or '-'}"
    )
    for rank, row in enumerate(metrics.leaderboard, start=1):
        typer.echo(
            f"{rank:>2}. {row.logo_id} "
            f"name={row.logo_name!r} "
            f"rating={row.rating:.2f} "
            f"wins={row.wins} losses={row.losses} matches={row.matches}"
        )


@app.command()
def reset(
    ctx: typer.Context,
    contest: Annotated[
        str | None,
        typer.Option("--contest", help="Contest id (default: the active contest)."),
    ] = None,
    initiator: Annotated[
        str | None,
        typer.Option("--initiator", help="Recorded in the audit trail."),
    ] = None,
    reason: Annotated[
        str,
        typer.Option("--reason", help="Recorded in the audit trail."),
    ] = "manual-reset",
    yes: Annotated[
        bool,
        typer.Option("--yes", help="Skip the confirmation prompt."),
    ] = False,
) -> None:
    """Blank all ratings for a contest. A backup is taken first."""
    if not yes:
        typer.confirm(f"Reset all votes for {contest or 'the active contest'}?", abort=True)

    try:
        state = _store(ctx).reset_contest_votes(contest, initiator=initiator, reason=reason)
    except LedgerError as exc:
        raise _fail(exc) from exc

    typer.echo(f"reset logos={len(state.entries)}")


@app.command("restore-backup")
def restore_backup(ctx: typer.Context) -> None:
    """Replace votes.json with the newest readable backup."""
    store = _store(ctx)
    if not store.restore_latest_backup():
        typer.echo(f"error: no readable backup under {store.backup_root}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"restored={store.votes_path}")


@app.command("show-config")
def show_config(ctx: typer.Context) -> None:
    """Print the effective configuration."""
    config: LedgerConfig = ctx.obj
    typer.echo(json.dumps(config.as_config_json(), indent=2))


if __name__ == "__main__":
    app()
