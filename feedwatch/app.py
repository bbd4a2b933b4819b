"""Typer CLI entrypoint for feedwatch."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigLocator, ConfigRepository, FeedwatchConfig
from .engine import CommandRecovery, DedupLedger, Fetcher, HealthState, HealthTracker
from .errors import FeedwatchError
from .infra import HostRateLimiter, SQLiteManager
from .logging_conf import configure_logging
from .notify import AppriseTransport, mask_url
from .orchestrator import DEFAULT_CONCURRENCY, CheckOrchestrator
from .results import CheckReport, render_summary

APPRISE_OVERRIDE_ENV = "FEEDWATCH_APPRISE_URL_OVERRIDE"

app = typer.Typer(
    help="feedwatch: check feeds and pages, notify on new items.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()
err_console = Console(stderr=True)


@dataclass
class AppState:
    repository: ConfigRepository
    config: FeedwatchConfig
    storage: SQLiteManager
    orchestrator: CheckOrchestrator
    ledger: DedupLedger
    health: HealthTracker


def build_state(verbose: bool, config_path: Optional[Path] = None) -> AppState:
    locator = ConfigLocator(config_path=config_path)
    configure_logging(verbose=verbose, log_dir=locator.logs_dir)
    repository = ConfigRepository(locator)
    config = repository.load()
    storage = SQLiteManager()
    database = storage.connect(locator.db_path)
    ledger = DedupLedger(database)
    health = HealthTracker(database)
    recovery = CommandRecovery(config.recovery_command) if config.recovery_command else None
    orchestrator = CheckOrchestrator(
        config=config,
        database=database,
        fetcher=Fetcher(rate_limiter=HostRateLimiter()),
        transport=AppriseTransport(),
        recovery=recovery,
        config_repository=repository,
        apprise_url_override=os.environ.get(APPRISE_OVERRIDE_ENV) or None,
        ledger=ledger,
        health=health,
    )
    return AppState(
        repository=repository,
        config=config,
        storage=storage,
        orchestrator=orchestrator,
        ledger=ledger,
        health=health,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = _build_or_exit(verbose=False, config_path=None)
        ctx.obj = state
    return state


def _build_or_exit(verbose: bool, config_path: Optional[Path]) -> AppState:
    try:
        return build_state(verbose, config_path)
    except FeedwatchError as exc:
        _fail(exc)


def _fail(exc: FeedwatchError) -> NoReturn:
    err_console.print(f"Error: {exc}", style="red", markup=False, highlight=False)
    if exc.hint:
        err_console.print(exc.hint, style="dim", markup=False, highlight=False)
    raise typer.Exit(code=1)


def _render_sent_table(report: CheckReport, dry_run: bool) -> Table:
    title = "Would send" if dry_run else "Sent"
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Destination", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Link", overflow="fold")
    for record in report.sent:
        table.add_row(record.destination, record.title, record.link)
    return table


def _render_health_table(states: Sequence[HealthState], names: dict[str, str]) -> Table:
    table = Table(title="Subscription health", box=box.SIMPLE_HEAD)
    table.add_column("Destination", style="cyan", no_wrap=True)
    table.add_column("Subscription", overflow="fold")
    table.add_column("Failures", justify="right")
    table.add_column("Last failure", style="dim")
    table.add_column("Last error", overflow="fold")
    for state in states:
        failures = state.consecutive_failures
        style = "red" if failures >= 3 else ("yellow" if failures else "green")
        table.add_row(
            names.get(state.destination, mask_url(state.destination)),
            state.subscription_url,
            f"[{style}]{failures}[/{style}]",
            state.last_failure_at or "-",
            state.last_error or "",
        )
    return table


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to the configuration file (YAML or JSON)."
    ),
) -> None:
    ctx.obj = _build_or_exit(verbose, config)


@app.command("check", help="Check every subscription once and deliver new items.")
def check(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Only check this destination."),
    parallel: str = typer.Option(
        str(DEFAULT_CONCURRENCY), "--parallel", "-p", help="Maximum concurrent subscription checks."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-d", help="Report what would be sent without sending."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    state = _get_state(ctx)
    if name is not None and state.config.find_channel(name) is None:
        err_console.print(f"Error: Destination not found: {name}", style="red", markup=False)
        raise typer.Exit(code=1)
    if not state.config.channels:
        err_console.print(
            f"No destinations configured. Add channels to {state.repository.path}.",
            style="yellow",
            markup=False,
        )
    try:
        report = state.orchestrator.run_check(
            destination_filter=name, concurrency=parallel, dry_run=dry_run
        )
    except FeedwatchError as exc:
        _fail(exc)

    if as_json:
        typer.echo(render_summary(report, dry_run=dry_run, as_json=True))
    else:
        if report.sent:
            console.print(_render_sent_table(report, dry_run))
        for error in report.errors:
            err_console.print(error, style="yellow", markup=False, highlight=False)
        console.print(render_summary(report, dry_run=dry_run, as_json=False), markup=False)
    raise typer.Exit(code=report.exit_code)


@app.command("health", help="Show consecutive failure counts per subscription.")
def health(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    states = state.health.list_states()
    if not states:
        console.print("No health records yet.", style="dim")
        return
    names = {channel.routing_key: channel.name for channel in state.config.channels}
    console.print(_render_health_table(states, names))


@app.command("history", help="List recently delivered items.")
def history(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Only show this destination."),
    limit: int = typer.Option(20, "--limit", min=1, help="Number of records to show."),
) -> None:
    state = _get_state(ctx)
    destination = None
    if name is not None:
        channel = state.config.find_channel(name)
        if channel is None:
            err_console.print(f"Error: Destination not found: {name}", style="red", markup=False)
            raise typer.Exit(code=1)
        destination = channel.routing_key
    records = state.ledger.recent(limit=limit, destination=destination)
    if not records:
        console.print("No delivery history.", style="dim")
        return
    names = {channel.routing_key: channel.name for channel in state.config.channels}
    table = Table(title=f"Last {len(records)} deliveries", box=box.SIMPLE_HEAD)
    table.add_column("Sent at", style="green", no_wrap=True)
    table.add_column("Destination", style="cyan")
    table.add_column("Title")
    table.add_column("Link", overflow="fold")
    for record in records:
        table.add_row(
            record.sent_at or "",
            names.get(record.destination, mask_url(record.destination)),
            record.title,
            record.link,
        )
    console.print(table)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
