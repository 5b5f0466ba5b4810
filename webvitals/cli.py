"""CLI entry point for the web vitals monitor."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from webvitals.alerts.dispatcher import AlertDispatcher, format_event
from webvitals.analysis.aggregator import dashboard_overview, group_by_domain
from webvitals.analysis.diagnosis import diagnose
from webvitals.models.config import ENV_PREFIX, SECRET_FIELDS, MonitorSettings
from webvitals.models.vitals import ProgressEvent
from webvitals.monitor import VitalsMonitor
from webvitals.psi.client import PageSpeedError, validate_api_key
from webvitals.reporter.console import (
    diagnosis_table,
    domains_table,
    history_table,
    overview_table,
    snapshot_table,
    targets_table,
)
from webvitals.storage.backend import JsonFileBackend
from webvitals.storage.store import VitalsStore, load_settings, read_settings_data, save_settings
from webvitals.url_utils import DuplicateTargetError, InvalidTargetError

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _print_progress(event: ProgressEvent) -> None:
    color = {"processing": "blue", "completed": "green", "error": "red"}.get(event.status, "white")
    suffix = f": {event.error}" if event.error else ""
    console.print(f"  [{event.current}/{event.total}] [{color}]{event.status}[/{color}] {event.url}{suffix}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", "-d", default=".webvitals", help="Directory holding monitor state")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, data_dir: str) -> None:
    """Core Web Vitals monitor backed by PageSpeed Insights"""
    setup_logging(verbose)
    ctx.obj = JsonFileBackend(Path(data_dir))


@cli.command()
@click.option("--api-key", prompt="PageSpeed Insights API key", hide_input=True,
              help="Google PSI API key (or env:VAR)")
@click.pass_obj
def init(backend: JsonFileBackend, api_key: str) -> None:
    """Store the PageSpeed Insights API key, keeping any other settings."""
    try:
        settings = MonitorSettings(**{**read_settings_data(backend), "google_psi_api_key": api_key})
    except ValidationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    save_settings(backend, settings)
    console.print(f"[green]Settings saved to {backend.directory}[/green]")
    console.print("\nAdd a website and run a first check:")
    console.print("  [blue]webvitals add https://example.com[/blue]")
    console.print("  [blue]webvitals refresh[/blue]")


@cli.command()
@click.argument("url")
@click.option("--name", "-n", default=None, help="Display name (defaults to hostname)")
@click.pass_obj
def add(backend: JsonFileBackend, url: str, name: str | None) -> None:
    """Start tracking a URL."""
    store = VitalsStore(backend)
    try:
        target = store.targets.add(url, name)
    except (InvalidTargetError, DuplicateTargetError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]Tracking[/green] {target.url} [dim](id {target.id})[/dim]")


@cli.command()
@click.argument("target_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def remove(backend: JsonFileBackend, target_id: str, yes: bool) -> None:
    """Stop tracking a URL and delete its history."""
    store = VitalsStore(backend)
    target = store.targets.get(target_id)
    if target is None:
        console.print(f"[red]No tracked target with id {target_id}[/red]")
        sys.exit(1)
    if not yes and not click.confirm(
        f"Remove '{target.display_name}' and permanently delete its history?"
    ):
        return
    store.remove_target(target_id)
    console.print(f"[green]Removed[/green] {target.url}")


@cli.command("list")
@click.pass_obj
def list_targets(backend: JsonFileBackend) -> None:
    """List tracked URLs with their latest vitals."""
    store = VitalsStore(backend)
    targets = store.targets.list()
    if not targets:
        console.print("[yellow]No websites tracked yet. Run 'webvitals add URL'.[/yellow]")
        return
    console.print(targets_table(targets, store.latest_by_target(t.id for t in targets)))


@cli.command()
@click.option("--id", "target_id", default=None, help="Refresh only this target")
@click.pass_obj
def refresh(backend: JsonFileBackend, target_id: str | None) -> None:
    """Fetch fresh vitals, store them and alert on degradation."""
    monitor = VitalsMonitor(backend)
    try:
        if target_id:
            results = [asyncio.run(monitor.refresh_target(target_id))]
        else:
            results = asyncio.run(monitor.refresh_all(on_progress=_print_progress)).results
    except (PageSpeedError, KeyError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title="Refresh Results")
    table.add_column("URL")
    table.add_column("Result")
    table.add_column("Degraded Metrics")
    for result in results:
        status = "[green]ok[/green]" if result.success else f"[red]failed: {result.error}[/red]"
        degraded = "\n".join(format_event(e) for e in result.degradations) or "-"
        table.add_row(result.url, status, degraded)
    console.print(table)


@cli.command()
@click.argument("target_id")
@click.option("--json", "as_json", is_flag=True, help="Print the raw snapshot as JSON")
@click.pass_obj
def show(backend: JsonFileBackend, target_id: str, as_json: bool) -> None:
    """Show the latest snapshot and diagnosis for a target."""
    store = VitalsStore(backend)
    target = store.targets.get(target_id)
    if target is None:
        console.print(f"[red]No tracked target with id {target_id}[/red]")
        sys.exit(1)
    snapshot = store.latest(target_id)
    if snapshot is None:
        console.print(f"[yellow]No data for {target.url} yet. Run 'webvitals refresh'.[/yellow]")
        return
    if as_json:
        click.echo(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return

    console.print(f"[bold]{target.display_name}[/bold] {target.url}")
    if not snapshot.has_performance_data:
        console.print(f"[yellow]Missing categories: {', '.join(snapshot.missing_categories)}[/yellow]")
    console.print(snapshot_table(snapshot))
    items = diagnose(snapshot)
    if items:
        console.print(diagnosis_table(items))
    else:
        console.print("[green]No issues found[/green]")


@cli.command()
@click.argument("target_id")
@click.pass_obj
def history(backend: JsonFileBackend, target_id: str) -> None:
    """Show the stored snapshot history for a target."""
    store = VitalsStore(backend)
    snapshots = store.all(target_id)
    if not snapshots:
        console.print(f"[yellow]No history for {target_id}[/yellow]")
        return
    console.print(history_table(snapshots))


@cli.command()
@click.pass_obj
def domains(backend: JsonFileBackend) -> None:
    """Show metrics averaged per domain."""
    store = VitalsStore(backend)
    targets = store.targets.list()
    latest = store.latest_by_target(t.id for t in targets)
    console.print(domains_table(group_by_domain(targets, latest)))


@cli.command()
@click.pass_obj
def overview(backend: JsonFileBackend) -> None:
    """Show a portfolio summary across all tracked sites."""
    store = VitalsStore(backend)
    targets = store.targets.list()
    latest = store.latest_by_target(t.id for t in targets)
    console.print(overview_table(dashboard_overview(targets, latest)))


@cli.command()
@click.option("--poll", default=30.0, help="Seconds between due checks")
@click.pass_obj
def watch(backend: JsonFileBackend, poll: float) -> None:
    """Keep running and refresh whenever the auto-refresh interval elapses."""
    monitor = VitalsMonitor(backend)
    if not monitor.settings.auto_refresh_enabled:
        console.print("[yellow]Auto refresh is disabled in settings[/yellow]")
        return
    console.print(
        f"Watching; refreshing every {monitor.settings.auto_refresh_interval_hours:g}h. Ctrl+C to stop."
    )
    try:
        asyncio.run(monitor.watch(poll_seconds=poll, on_progress=_print_progress))
    except KeyboardInterrupt:
        console.print("\nStopped")


@cli.group()
def settings() -> None:
    """View or change settings."""
    pass


@settings.command("show")
@click.pass_obj
def settings_show(backend: JsonFileBackend) -> None:
    """Print current settings (secrets masked)."""
    data = load_settings(backend).model_dump()
    table = Table(title="Settings")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in data.items():
        if key in SECRET_FIELDS and value and not str(value).startswith(ENV_PREFIX):
            value = "********"
        table.add_row(key, str(value))
    console.print(table)


@settings.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def settings_set(backend: JsonFileBackend, key: str, value: str) -> None:
    """Set a single setting, e.g. 'webvitals settings set alerts_enabled false'."""
    if key not in MonitorSettings.model_fields:
        console.print(f"[red]Unknown setting: {key}[/red]")
        sys.exit(1)
    data = read_settings_data(backend)
    if key == "email_recipients":
        data[key] = [v.strip() for v in value.split(",") if v.strip()]
    else:
        data[key] = value
    try:
        updated = MonitorSettings(**data)
    except ValidationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    save_settings(backend, updated)
    console.print(f"[green]Updated {key}[/green]")


@cli.command("test-alerts")
@click.pass_obj
def test_alerts(backend: JsonFileBackend) -> None:
    """Check the API key and send test messages to configured alert channels."""
    current = load_settings(backend)
    dispatcher = AlertDispatcher(current)

    async def run_checks() -> dict[str, bool | None]:
        return {
            "PageSpeed API key": await validate_api_key(current.google_psi_api_key)
            if current.google_psi_api_key else None,
            "Slack webhook": await dispatcher.test_slack_webhook()
            if current.slack_webhook_url else None,
            "Email": await dispatcher.test_email() if current.email_configured else None,
        }

    for name, ok in asyncio.run(run_checks()).items():
        if ok is None:
            console.print(f"  {name}: [dim]not configured[/dim]")
        elif ok:
            console.print(f"  {name}: [green]ok[/green]")
        else:
            console.print(f"  {name}: [red]failed[/red]")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def clear(backend: JsonFileBackend, yes: bool) -> None:
    """Delete all tracked URLs and history (settings are kept)."""
    if not yes and not click.confirm("Delete all tracked websites and their history?"):
        return
    VitalsStore(backend).clear_all()
    console.print("[green]All data cleared[/green]")


if __name__ == "__main__":
    cli()
