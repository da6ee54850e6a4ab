"""
Command-line interface for ParcelWatch.
Provides commands for running the service and managing tracked parcels.
"""

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from parcelwatch import __version__
from parcelwatch.config import init_config
from parcelwatch.exceptions import ConfigurationError, PersistenceError
from parcelwatch.models import Tracking, TrackingUpdate

console = Console()


def _format_time(value) -> str:
    if value is None:
        return "[dim]never[/dim]"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _run_with_service(config_file, func):
    """Build the tracking service, run func(service) and clean up."""
    from parcelwatch.core import ParcelWatchAgent

    async def runner():
        agent = ParcelWatchAgent(init_config(config_file))
        service = agent.build_service()
        try:
            return await func(service)
        finally:
            await service.provider.close()

    try:
        return asyncio.run(runner())
    except ConfigurationError as e:
        console.print(f"[red]✗ Configuration error: {e}[/red]")
        raise SystemExit(1)
    except PersistenceError as e:
        console.print(f"[red]✗ Storage error: {e}[/red]")
        raise SystemExit(1)


def _print_update(update: TrackingUpdate):
    if update.is_not_found:
        console.print(
            f"[yellow]… {update.tracking_number} is not known to the provider yet, "
            "keep waiting[/yellow]"
        )
        return
    if update.is_error:
        console.print(f"[red]✗ Could not check {update.tracking_number}: {update.error}[/red]")
        return

    table = Table(title=f"Updates for {update.display_name or update.tracking_number}")
    table.add_column("Provider", style="cyan")
    table.add_column("Time", style="green")
    table.add_column("Status")
    table.add_column("Description", style="dim")

    for info in update.new_tracking_infos:
        for event in info.events:
            table.add_row(info.api_name, _format_time(event.time), event.status, event.description)
    for event in update.new_tracking_events:
        table.add_row("", _format_time(event.time), event.status, event.description)

    console.print(table)


def _print_snapshot(tracking: Tracking):
    table = Table(title=f"{tracking.tracking_number} {tracking.display_name}".strip())
    table.add_column("Provider", style="cyan")
    table.add_column("Time", style="green")
    table.add_column("Status")
    table.add_column("Description", style="dim")

    for info in tracking.tracking_infos:
        for event in info.events:
            table.add_row(info.api_name, _format_time(event.time), event.status, event.description)

    console.print(table)
    console.print(f"Last polled: {_format_time(tracking.last_polled_at)}")


@click.group()
@click.version_option(version=__version__, prog_name="ParcelWatch")
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx, config):
    """ParcelWatch - parcel tracking updates"""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def run(ctx):
    """Run the service in foreground mode."""
    console.print(Panel.fit(
        f"[bold blue]ParcelWatch v{__version__}[/bold blue]\n"
        "Press Ctrl+C to stop",
        title="Starting Service"
    ))

    from parcelwatch.core import run_agent

    try:
        run_agent(ctx.obj["config"])
    except ConfigurationError as e:
        console.print(f"[red]✗ Configuration error: {e}[/red]")
        raise SystemExit(1)


@cli.command()
@click.argument("tracking_number")
@click.argument("name", nargs=-1)
@click.option("--user", "-u", "user_id", type=int, default=0, show_default=True, help="User ID")
@click.pass_context
def track(ctx, tracking_number, name, user_id):
    """Start tracking a parcel and show what the provider knows now."""

    async def do_track(service):
        await service.track(user_id, tracking_number, " ".join(name))
        console.print(f"[green]✓ Started tracking {tracking_number}[/green]")

        receive = asyncio.create_task(service.updates.get())
        background = set(service.background_tasks)
        done, _ = await asyncio.wait({receive, *background}, return_when=asyncio.FIRST_COMPLETED)

        if receive in done:
            _print_update(receive.result())
        else:
            receive.cancel()
            console.print("[dim]No tracking info yet[/dim]")

        await service.wait_for_background()

    _run_with_service(ctx.obj["config"], do_track)


@cli.command("list")
@click.option("--user", "-u", "user_id", type=int, default=0, show_default=True, help="User ID")
@click.pass_context
def list_trackings(ctx, user_id):
    """List tracked parcels."""

    async def do_list(service):
        return await service.list_trackings(user_id)

    trackings = _run_with_service(ctx.obj["config"], do_list)

    if not trackings:
        console.print("[yellow]No parcels tracked[/yellow]")
        return

    table = Table(title="Tracked parcels")
    table.add_column("Tracking number", style="cyan")
    table.add_column("Name")
    table.add_column("Providers", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Last polled", style="green")

    for tracking in trackings:
        table.add_row(
            tracking.tracking_number,
            tracking.display_name or "[dim]-[/dim]",
            str(len(tracking.tracking_infos)),
            str(sum(len(info.events) for info in tracking.tracking_infos)),
            _format_time(tracking.last_polled_at),
        )

    console.print(table)


@cli.command()
@click.argument("tracking_number")
@click.option("--user", "-u", "user_id", type=int, default=0, show_default=True, help="User ID")
@click.pass_context
def show(ctx, tracking_number, user_id):
    """Show the stored tracking info of a parcel."""

    async def do_show(service):
        return await service.get_tracking(user_id, tracking_number)

    tracking = _run_with_service(ctx.obj["config"], do_show)

    if tracking is None:
        console.print(f"[yellow]{tracking_number} is not tracked[/yellow]")
        return

    _print_snapshot(tracking)


@cli.command()
@click.argument("tracking_number")
@click.option("--user", "-u", "user_id", type=int, default=0, show_default=True, help="User ID")
@click.pass_context
def untrack(ctx, tracking_number, user_id):
    """Stop tracking a parcel."""

    async def do_untrack(service):
        return await service.delete_tracking(user_id, tracking_number)

    if _run_with_service(ctx.obj["config"], do_untrack):
        console.print(f"[green]✓ Stopped tracking {tracking_number}[/green]")
    else:
        console.print(f"[yellow]{tracking_number} is not tracked[/yellow]")


@cli.command()
@click.pass_context
def status(ctx):
    """Show configuration."""
    console.print(Panel.fit(
        f"[bold]ParcelWatch v{__version__}[/bold]",
        title="Status"
    ))

    from parcelwatch.config import ParcelWatchConfig

    try:
        config = ParcelWatchConfig.from_env(ctx.obj["config"])
    except ConfigurationError as e:
        console.print(f"[red]✗ Configuration error: {e}[/red]")
        raise SystemExit(1)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Parcels service", config.parcels_service_url or "[dim]Not set[/dim]")
    table.add_row("Database", config.db_path or "[dim]Not set[/dim]")
    table.add_row("Polling interval", f"{config.polling_interval:g}s")
    table.add_row("Provider timeout", f"{config.provider_timeout:g}s")
    table.add_row(
        "Update hand-off",
        "synchronous" if config.updates_buffer_size == 0 else f"buffer of {config.updates_buffer_size}",
    )
    table.add_row("Log file", config.log_file)

    console.print(table)

    for error in config.validate():
        console.print(f"[red]✗ {error}[/red]")


@cli.command()
@click.argument("config_path", type=click.Path())
def init(config_path):
    """Initialize configuration file."""
    config_path = Path(config_path)

    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    template = '''# ParcelWatch Configuration

# Tracking provider
PARCELS_SERVICE_URL=http://localhost:8080
PROVIDER_TIMEOUT=30

# Storage
DB_PATH=data/parcelwatch.db

# Polling (e.g. 90s, 10m, 1h30m)
POLLING_DURATION=10m

# 0 = publisher waits for the consumer, N = queue up to N updates
UPDATES_BUFFER_SIZE=0
SHUTDOWN_GRACE_SECONDS=10

# Logging
LOG_LEVEL=INFO
LOG_FILE=logs/parcelwatch.log
'''

    config_path.write_text(template, encoding='utf-8')
    console.print(f"[green]✓ Configuration file created: {config_path}[/green]")
    console.print("\nEdit this file with your settings, then run:")
    console.print(f"  parcelwatch --config {config_path} run")


@cli.command()
@click.pass_context
def logs(ctx):
    """View recent logs."""
    from parcelwatch.config import ParcelWatchConfig

    try:
        config = ParcelWatchConfig.from_env(ctx.obj["config"])
    except ConfigurationError as e:
        console.print(f"[red]✗ Configuration error: {e}[/red]")
        raise SystemExit(1)

    log_file = Path(config.log_file)

    if not log_file.exists():
        console.print(f"[yellow]Log file not found: {log_file}[/yellow]")
        return

    console.print(f"[bold]Recent logs from {log_file}:[/bold]\n")

    with open(log_file, "r", encoding="utf-8") as f:
        lines = f.readlines()
        recent = lines[-50:] if len(lines) > 50 else lines

        for line in recent:
            if "ERROR" in line:
                console.print(f"[red]{line.rstrip()}[/red]")
            elif "WARNING" in line:
                console.print(f"[yellow]{line.rstrip()}[/yellow]")
            elif "INFO" in line:
                console.print(f"[green]{line.rstrip()}[/green]")
            else:
                console.print(line.rstrip())


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
