#!/usr/bin/env python3
"""
League History CLI - terminal interface for the historical league pipeline.

Runs the acquisition pipeline and inspects what it stored.
"""

import asyncio
import atexit
import os
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from league_history.api.client import AuthFailure
from league_history.models.summary import RunOutcome, RunSummary
from league_history.pipeline.config import DEFAULT_DATABASE_URL, load_config
from league_history.pipeline.runner import exit_code, run_pipeline
from league_history.store import IdentityResolver, ReconciliationStore, StoreFailure
from league_history.utils.logger import pipeline_logger
from league_history.utils.metrics import get_metrics

# Respect NO_COLOR for clean container logs
use_rich = os.getenv("NO_COLOR") is None
console = Console(
    no_color=not use_rich,
    force_terminal=use_rich,
)
app = typer.Typer(
    name="league-history",
    help="Historical league table acquisition and reconciliation",
    rich_markup_mode="rich",
)


def _shutdown_metrics() -> None:
    """Flush pending metrics before exit."""
    get_metrics().shutdown(timeout_seconds=5)


atexit.register(_shutdown_metrics)


OUTCOME_STYLES = {
    RunOutcome.COMPLETED: "green",
    RunOutcome.NOTHING_TO_DO: "yellow",
    RunOutcome.CANCELLED: "yellow",
    RunOutcome.DISCOVERY_FAILED: "red",
    RunOutcome.ABORTED: "red",
}


def setup_environment(verbose: bool = False) -> None:
    """Load .env and align the logger level with the environment."""
    from dotenv import load_dotenv

    load_dotenv()

    log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO")
    os.environ["LOG_LEVEL"] = log_level
    pipeline_logger.get_logger().setLevel(log_level)


def open_store() -> ReconciliationStore:
    """Open the store named by DATABASE_URL."""
    return ReconciliationStore.from_url(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL))


def display_summary(summary: RunSummary) -> None:
    """Render a run summary: per-season counts, totals and snapshot diff."""
    style = OUTCOME_STYLES.get(summary.outcome, "white")

    season_table = Table(show_header=True, header_style="bold magenta")
    season_table.add_column("Season", style="cyan")
    season_table.add_column("Divisions", justify="right")
    season_table.add_column("Attempted", justify="right")
    season_table.add_column("Succeeded", style="green", justify="right")
    season_table.add_column("Failed", style="red", justify="right")
    season_table.add_column("Created", justify="right")
    season_table.add_column("Updated", justify="right")

    for season in summary.seasons:
        label = season.season_name or season.season_id
        if season.discovery_error:
            label += " [red](discovery failed)[/red]"
        season_table.add_row(
            label,
            str(season.divisions_found),
            str(season.divisions_attempted),
            str(season.divisions_succeeded),
            str(season.divisions_failed),
            str(season.teams_created),
            str(season.teams_updated),
        )

    season_table.add_row(
        "[bold]Total[/bold]",
        "",
        str(summary.divisions_attempted),
        str(summary.divisions_succeeded),
        str(summary.divisions_failed),
        str(summary.teams_created),
        str(summary.teams_updated),
    )

    console.print(
        Panel(
            season_table,
            title=f"Run {summary.outcome.value}",
            border_style=style,
        )
    )

    diff = summary.diff()
    if diff:
        diff_table = Table(show_header=True, header_style="bold cyan")
        diff_table.add_column("Season")
        diff_table.add_column("Before", justify="right")
        diff_table.add_column("After", justify="right")
        diff_table.add_column("Change", justify="right")
        for delta in diff:
            change_style = "green" if delta.change > 0 else "dim"
            diff_table.add_row(
                delta.season_id,
                str(delta.before),
                str(delta.after),
                f"[{change_style}]{delta.change:+d}[/{change_style}]",
            )
        console.print(Panel(diff_table, title="Stored teams by season"))

    for error in summary.errors:
        console.print(f"[yellow]• {error}[/yellow]")


@app.command()
def run() -> None:
    """
    Scrape every division of every season and reconcile the results.

    Configuration comes from the environment (LEAGUE_API_BASE_URL,
    LEAGUE_API_EMAIL, LEAGUE_API_PASSWORD, ...) or a .env file.
    """
    setup_environment()

    try:
        config = load_config()
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1) from e

    try:
        summary = asyncio.run(run_pipeline(config))
    except AuthFailure as e:
        console.print(f"[red]Authentication failed: {e}[/red]")
        raise typer.Exit(1) from e

    display_summary(summary)
    raise typer.Exit(exit_code(summary))


@app.command()
def report(
    limit: Annotated[
        int, typer.Option("--limit", "-l", help="Number of recent teams to show")
    ] = 5,
) -> None:
    """Show what the store currently holds."""
    setup_environment()

    try:
        store = open_store()
        by_season = store.count_teams_by_season()
        entries = store.count_league_entries_by_season()
        by_division = store.count_teams_by_season_and_division()
        identities = store.count_identities()
        recent = store.recent_teams(limit)
    except StoreFailure as e:
        console.print(f"[red]Store unavailable: {e}[/red]")
        raise typer.Exit(1) from e

    season_table = Table(show_header=True, header_style="bold magenta")
    season_table.add_column("Season", style="cyan")
    season_table.add_column("Teams", justify="right")
    season_table.add_column("Table entries", justify="right")
    for season_id in sorted(set(by_season) | set(entries)):
        season_table.add_row(
            season_id,
            str(by_season.get(season_id, 0)),
            str(entries.get(season_id, 0)),
        )
    console.print(Panel(season_table, title="By season"))

    division_table = Table(show_header=True, header_style="bold magenta")
    division_table.add_column("Season", style="cyan")
    division_table.add_column("Division", style="cyan")
    division_table.add_column("Teams", justify="right")
    for (season_id, division_id), count in by_division.items():
        division_table.add_row(season_id, division_id, str(count))
    console.print(Panel(division_table, title="By division"))

    console.print(f"Team identities: [bold]{identities}[/bold]")

    if recent:
        recent_table = Table(show_header=True, header_style="bold magenta")
        recent_table.add_column("Team", style="green")
        recent_table.add_column("Division")
        recent_table.add_column("Season")
        recent_table.add_column("Created")
        for team in recent:
            recent_table.add_row(
                team.team_name,
                team.division,
                team.season_id,
                team.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(Panel(recent_table, title="Recently created teams"))


@app.command("find-team")
def find_team(
    name: Annotated[str, typer.Argument(help="Exact team name")],
    division: Annotated[
        Optional[str], typer.Option("--division", "-d", help="Division label")
    ] = None,
    league_id: Annotated[
        Optional[str], typer.Option("--league", help="League id (needs --division)")
    ] = None,
    season_id: Annotated[
        Optional[str], typer.Option("--season", help="Season id (needs --league)")
    ] = None,
) -> None:
    """Look a team up by the leading parts of its natural key."""
    setup_environment()

    try:
        teams = open_store().find_teams_by_natural_key_prefix(
            name, division=division, league_id=league_id, season_id=season_id
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2) from e
    except StoreFailure as e:
        console.print(f"[red]Store unavailable: {e}[/red]")
        raise typer.Exit(1) from e

    if not teams:
        console.print(f"[yellow]No teams found for {name!r}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Team", style="green")
    table.add_column("Division")
    table.add_column("League")
    table.add_column("Season")
    table.add_column("Division ID", style="dim")
    table.add_column("Identity", justify="right")
    for team in teams:
        table.add_row(
            str(team.id),
            team.team_name,
            team.division,
            team.league_id,
            team.season_id,
            team.division_id,
            str(team.team_identity_id or "-"),
        )
    console.print(table)


@app.command("resolve-identities")
def resolve_identities() -> None:
    """Link teams that recur unchanged across seasons to one identity."""
    setup_environment()

    try:
        store = open_store()
        result = IdentityResolver(store).resolve()
        histories = store.identities_with_history()
    except StoreFailure as e:
        console.print(f"[red]Store unavailable: {e}[/red]")
        raise typer.Exit(1) from e

    console.print(
        f"[green]Identities created: {result.identities_created}, "
        f"teams linked: {result.teams_linked}[/green]"
    )
    if result.unresolved:
        console.print(f"[yellow]Unresolved teams: {result.unresolved}[/yellow]")
    for conflict in result.conflicts:
        console.print(f"[red]Conflict: {conflict}[/red]")

    if histories:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Identity", style="green")
        table.add_column("Current season")
        table.add_column("Earlier seasons", style="dim")
        for entry in histories:
            current = entry.current
            table.add_row(
                entry.identity.display_name,
                current.season_id if current else "-",
                ", ".join(t.season_id for t in entry.history) or "-",
            )
        console.print(Panel(table, title="Team identities"))


if __name__ == "__main__":
    app()
