"""
CLI interface for Quota Guard.

Inspect and manage today's translation quota from the command line.
"""

import asyncio
import logging
import sys
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from quota_guard.config.loader import DEFAULT_CONFIG, DEFAULT_DB_PATH, load_quota_config
from quota_guard.core.identity import EnvTokenSource, IdentityResolver
from quota_guard.core.quota_policy import QuotaLevel, QuotaPolicy
from quota_guard.core.usage_ledger import UsageLedger
from quota_guard.storage.repository import SqliteSnapshotStore, StoreError, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

TOKEN_ENV_VAR = "QUOTA_GUARD_USER_TOKEN"

_LEVEL_STYLES = {
    QuotaLevel.NORMAL: "green",
    QuotaLevel.WARNING: "yellow",
    QuotaLevel.CRITICAL: "red",
}


def _build_ledger(ctx: typer.Context) -> UsageLedger:
    """Ledger for the configured database and resolved identity."""
    options = ctx.obj or {}
    config = DEFAULT_CONFIG
    if options.get("config_path"):
        config = load_quota_config(options["config_path"])

    store = SqliteSnapshotStore(options.get("db_path", DEFAULT_DB_PATH))
    resolver = IdentityResolver(EnvTokenSource(TOKEN_ENV_VAR))
    identity = asyncio.run(resolver.resolve())
    return UsageLedger(store, identity=identity, config=config)


def _ledger_or_exit(ctx: typer.Context) -> UsageLedger:
    """Build the ledger, or print the error and exit with EXIT_CODE_FAIL."""
    try:
        return _build_ledger(ctx)
    except (ValueError, FileNotFoundError, yaml.YAMLError, StoreError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the usage database"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Operator-supplied YAML quota config for this deployment (overrides the built-in limits)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Quota Guard CLI."""
    ctx.obj = {"db_path": db_path, "config_path": config_path}
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )
    if ctx.invoked_subcommand is None:
        console.print("Quota Guard - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the usage database."""
    try:
        initialize_schema(ctx.obj["db_path"])
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except StoreError as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(ctx: typer.Context):
    """Show today's usage against the daily quota."""
    ledger = _ledger_or_exit(ctx)

    policy = QuotaPolicy(ledger)
    stats = ledger.get_usage_stats()
    message = policy.usage_message()

    table = Table(title=f"Translation usage for {stats.day.isoformat()} (UTC)")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Characters used", f"{stats.chars_used:,}")
    table.add_row("Characters remaining", f"{stats.chars_remaining:,}")
    table.add_row("Daily limit", f"{stats.daily_limit:,}")
    table.add_row("Percent used", f"{stats.percent_used:.1f}%")
    table.add_row("Requests", f"{stats.request_count:,}")
    table.add_row("Tracking", stats.tracking_mode.value)
    console.print(table)

    style = _LEVEL_STYLES[message.level]
    console.print(f"[{style}]{message.text}[/]")
    console.print(policy.time_until_reset().message)


@app.command()
def check(
    ctx: typer.Context,
    sizes: Optional[List[int]] = typer.Argument(None, help="Character count of each item in the batch"),
    text: Optional[List[str]] = typer.Option(None, "--text", "-t", help="Text to size instead of explicit counts"),
):
    """Check whether a batch would fit today's quota. Exits 1 on rejection."""
    ledger = _ledger_or_exit(ctx)

    policy = QuotaPolicy(ledger)
    try:
        if text:
            decision = policy.validate_texts(text)
        else:
            decision = policy.validate_batch(sizes or [])
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    style = _LEVEL_STYLES[decision.level]
    console.print(f"[bold]Decision:[/bold] {decision.admission.name} ({decision.level.value})")
    console.print(f"[{style}]{decision.message}[/]")

    if not decision.can_proceed:
        console.print(policy.time_until_reset().message)
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def record(
    ctx: typer.Context,
    chars: int = typer.Argument(..., min=0, help="Characters consumed by a completed request"),
):
    """Record characters consumed by a completed translation request."""
    ledger = _ledger_or_exit(ctx)

    ledger.record_usage(chars)
    stats = ledger.get_usage_stats()
    console.print(f"[green]✓[/] Recorded {chars:,} chars ({stats.chars_used:,}/{stats.daily_limit:,} used today)")


@app.command()
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Reset today's usage to zero for the active identity."""
    if not yes and not typer.confirm("Reset today's usage?"):
        console.print("Aborted")
        sys.exit(EXIT_CODE_FAIL)

    ledger = _ledger_or_exit(ctx)

    ledger.reset()
    console.print("[green]✓[/] Usage reset for today")


@app.command()
def info(ctx: typer.Context):
    """Show which identity usage is tracked under."""
    ledger = _ledger_or_exit(ctx)

    tracking = ledger.tracking_info()
    console.print(f"[bold]Mode:[/bold] {tracking.mode.value}")
    console.print(f"[bold]Identity:[/bold] {tracking.identity}")
    console.print(tracking.description)
    if tracking.degraded:
        console.print("[yellow]Identity derived with a non-cryptographic hash[/]")


if __name__ == "__main__":
    app()
