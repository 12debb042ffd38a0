"""CLI commands for weeklybot."""

import asyncio
import sys
from datetime import timedelta

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from weeklybot import __logo__, __version__

app = typer.Typer(
    name="weeklybot",
    help=f"{__logo__} weeklybot - Weekly Slack reminders",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} weeklybot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """weeklybot - Weekly Slack reminders."""
    pass


def _load():
    """Load config and apply the configured log level to stderr."""
    from weeklybot.config.loader import load_config
    from weeklybot.errors import ConfigError

    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    logger.remove()
    logger.add(sys.stderr, level=config.logs.level)
    return config


def _build(config):
    """Create store + retry shell, exiting cleanly on config errors."""
    from weeklybot.errors import ConfigError
    from weeklybot.schedule.runner import RetryShell, create_notifier, create_store

    try:
        store = create_store(config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Edit ~/.weeklybot/config.json or run [cyan]weeklybot onboard[/cyan].")
        raise typer.Exit(1)
    return store, RetryShell.build(config, store, create_notifier(config))


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize weeklybot configuration."""
    from weeklybot.config.loader import get_config_path, save_config
    from weeklybot.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} weeklybot is ready!")
    console.print("\nNext steps:")
    console.print("  1. Set [cyan]supabase.url[/cyan] and [cyan]supabase.serviceRoleKey[/cyan]")
    console.print("  2. Set [cyan]slack.webhookUrl[/cyan]")
    console.print("  3. Check the schedule: [cyan]weeklybot debug[/cyan]")


# ============================================================================
# Evaluation
# ============================================================================


@app.command()
def run(
    show_logs: bool = typer.Option(False, "--logs", "-l", help="Print the pass log afterwards"),
):
    """Run one evaluation pass now."""
    from weeklybot.utils.logbuffer import LogBuffer

    config = _load()
    store, shell = _build(config)
    buffer = LogBuffer(max_entries=config.logs.max_entries)

    buffer.install(level=config.logs.level)
    try:
        summary = asyncio.run(shell.run_once())
    finally:
        buffer.remove()
        store.close()

    if show_logs:
        console.print("\n[bold]Execution log[/bold] (newest first)")
        for line in buffer.entries():
            console.print(f"  [dim]{line}[/dim]", highlight=False)

    if summary.ok:
        console.print(f"[green]✓[/green] {summary.describe()}")
        for warning in summary.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
    else:
        console.print(f"[red]✗[/red] {summary.describe()}")
        raise typer.Exit(1)


@app.command()
def serve():
    """Run evaluation passes on the configured timers until interrupted."""
    from weeklybot.heartbeat.service import HeartbeatService
    from weeklybot.utils.logbuffer import LogBuffer

    config = _load()
    store, shell = _build(config)
    buffer = LogBuffer(max_entries=config.logs.max_entries)

    heartbeat = HeartbeatService(
        on_tick=shell.run_once,
        intervals_s=config.schedule.timer_intervals_s,
    )

    intervals = ", ".join(f"{i}s" for i in config.schedule.timer_intervals_s)
    console.print(f"{__logo__} Starting weeklybot (timers: {intervals})...")

    async def _serve():
        await heartbeat.start()
        try:
            while heartbeat.running:
                await asyncio.sleep(3600)
        finally:
            heartbeat.stop()
            await heartbeat.wait_idle()

    buffer.install(level=config.logs.level)
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
    finally:
        buffer.remove()
        store.close()

    console.print(f"[dim]{heartbeat.ticks} tick(s); last {len(buffer)} log line(s):[/dim]")
    for line in buffer.entries()[:10]:
        console.print(f"  [dim]{line}[/dim]", highlight=False)


@app.command()
def debug():
    """Show how every rule compares to the current moment (sends nothing)."""
    from weeklybot.schedule.matcher import LocalMoment
    from weeklybot.utils.helpers import utc_now

    config = _load()
    store, shell = _build(config)
    evaluator = shell.evaluator

    now = utc_now()
    moment = LocalMoment.from_datetime(now, config.schedule.utc_offset_hours)
    try:
        diagnostics = asyncio.run(evaluator.analyze(now))
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()

    console.print(
        f"Now: {moment.day_name.title()} ({int(moment.day)}) {moment.time} "
        f"UTC{config.schedule.utc_offset_hours:+d}  |  window ±{config.schedule.tolerance_minutes} min"
    )

    table = Table(title="Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Day")
    table.add_column("Time")
    table.add_column("Active")
    table.add_column("Diff (min)", justify="right")
    table.add_column("Cooldown")
    table.add_column("Would send")

    for d in diagnostics:
        if d.window_minutes is None:
            cooldown = "[dim]-[/dim]"
        elif d.suppressed:
            cooldown = f"[yellow]suppressed ({d.window_minutes}m)[/yellow]"
        else:
            cooldown = f"clear ({d.window_minutes}m)"
        table.add_row(
            d.rule.id,
            d.rule.day_of_week.day_name.title(),
            str(d.rule.time_of_day),
            "✓" if d.rule.active else "[dim]no[/dim]",
            str(d.minute_distance) if d.day_match else "[dim]other day[/dim]",
            cooldown,
            "[green]yes[/green]" if d.would_send else "[dim]no[/dim]",
        )

    console.print(table)
    ready = sum(1 for d in diagnostics if d.would_send)
    console.print(f"{len(diagnostics)} rule(s), {ready} ready to send")


@app.command()
def cleanup(
    hours: int = typer.Option(None, "--hours", min=1, help="Retention horizon (default from config)"),
):
    """Delete delivery records older than the retention horizon."""
    from weeklybot.utils.helpers import utc_now

    config = _load()
    store, _ = _build(config)
    retention = hours if hours is not None else config.ledger.retention_hours
    cutoff = utc_now() - timedelta(hours=retention)

    try:
        removed = store.purge_deliveries(cutoff)
    except Exception as e:
        console.print(f"[red]Cleanup failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()

    console.print(f"[green]✓[/green] Removed {removed} delivery record(s) older than {retention}h")


# ============================================================================
# System Commands
# ============================================================================


@app.command()
def status():
    """Check weeklybot configuration."""
    from weeklybot.config.loader import get_config_path

    config_path = get_config_path()
    if not config_path.exists():
        console.print("[red]Error: weeklybot is not initialized.[/red]")
        console.print("Run [cyan]weeklybot onboard[/cyan] first.")
        raise typer.Exit(1)

    config = _load()
    sched = config.schedule

    console.print(f"{__logo__} [bold]weeklybot status[/bold]")
    console.print(f"Version: {__version__}")
    console.print(f"Config: {config_path}")

    table = Table(title="Configuration Summary")
    table.add_column("Category", style="cyan")
    table.add_column("Value", style="green")

    if config.store.backend == "json":
        table.add_row("Store", f"json ({config.store.json_path})")
    else:
        has_supabase = bool(config.supabase.url and config.supabase.service_role_key)
        table.add_row("Store", "supabase" if has_supabase else "[red]supabase (not set)[/red]")
    table.add_row("Slack webhook", "✓" if config.slack.webhook_url else "[dim]not set[/dim]")
    table.add_row("Slack test webhook", "✓" if config.slack.test_webhook_url else "[dim]not set[/dim]")
    table.add_row("Timezone", f"UTC{sched.utc_offset_hours:+d}")
    table.add_row("Tolerance", f"{sched.tolerance_minutes} min")
    table.add_row(
        "Cooldown",
        f"{sched.short_cooldown_minutes} min if diff ≤ {sched.close_distance_threshold}, "
        f"else {sched.long_cooldown_minutes} min",
    )
    table.add_row("Midnight wraparound", "on" if sched.wrap_midnight else "off")
    table.add_row("Timers", ", ".join(f"{i}s" for i in sched.timer_intervals_s))

    console.print(table)


if __name__ == "__main__":
    app()
