"""
CLI interface for token savings tracking.

Provides command-line access to recording and reporting.
"""

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from token_savings.config.loader import Settings, load_settings
from token_savings.core.aggregator import aggregate_by_command, aggregate_daily
from token_savings.core.errors import StoreUnavailableError, UnsupportedFormatError
from token_savings.core.exporter import ExportFormat, parse_format, render
from token_savings.core.overview import QuotaTier, render_compact, render_overview
from token_savings.core.report import compose_report, resolve_views
from token_savings.core.token_counter import TokenCounts
from token_savings.storage.db import open_store
from token_savings.storage.models import InvocationRecord
from token_savings.storage.repository import (
    FetchResult,
    RecordRepository,
    initialize_schema,
    insert_record,
)

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

HISTORY_LIMIT = 10
BY_COMMAND_LIMIT = 10

_LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def _configure_logging(verbose: int) -> None:
    level = _LOG_LEVELS[min(verbose, len(_LOG_LEVELS) - 1)]
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)]
    )


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/] {escape(message)}", highlight=False)
    sys.exit(EXIT_CODE_FAIL)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _fetch(settings: Settings, with_recent: bool = False):
    """Read the history once for this request."""
    since = None
    if settings.history_days is not None:
        since = datetime.now(timezone.utc) - timedelta(days=settings.history_days)
    with open_store(settings.db_path) as conn:
        repository = RecordRepository(conn, settings.db_path)
        fetched = repository.fetch_records(since=since)
        recent = repository.get_recent(HISTORY_LIMIT, since=since) if with_recent else None
    return fetched, recent


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (-v info, -vv debug)"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML settings file"
    ),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to the history database (overrides config)"
    )
):
    """Token Savings CLI."""
    _configure_logging(verbose)
    try:
        settings = load_settings(str(config) if config else None)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        _fail(f"Invalid configuration: {e}")
    if db is not None:
        settings = Settings(
            db_path=str(db),
            timezone=settings.timezone,
            week_start=settings.week_start,
            history_days=settings.history_days
        )
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        console.print("Token Savings - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the history database."""
    settings = _settings(ctx)
    try:
        initialize_schema(settings.db_path)
    except StoreUnavailableError as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Database initialized at {escape(settings.db_path)}", highlight=False)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def track(
    ctx: typer.Context,
    original_cmd: str = typer.Argument(..., help="Equivalent standard command, e.g. 'ls -la'"),
    rtk_cmd: str = typer.Argument(..., help="Wrapped command that was run, e.g. 'rtk ls'"),
    input_tokens: Optional[int] = typer.Option(
        None,
        "--input-tokens",
        min=0,
        help="Tokens the raw output would have cost"
    ),
    output_tokens: Optional[int] = typer.Option(
        None,
        "--output-tokens",
        min=0,
        help="Tokens the compressed output cost"
    ),
    input_file: Optional[Path] = typer.Option(
        None,
        "--input-file",
        exists=True,
        dir_okay=False,
        help="File holding the raw output; tokens are estimated"
    ),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output-file",
        exists=True,
        dir_okay=False,
        help="File holding the compressed output; tokens are estimated"
    )
):
    """Record one command execution."""
    settings = _settings(ctx)
    if input_file is not None and output_file is not None:
        counts = TokenCounts.from_text(
            input_file.read_text(encoding="utf-8", errors="replace"),
            output_file.read_text(encoding="utf-8", errors="replace")
        )
    elif input_tokens is not None and output_tokens is not None:
        counts = TokenCounts(input_tokens=input_tokens, output_tokens=output_tokens)
    else:
        _fail("Provide --input-tokens and --output-tokens, or --input-file and --output-file")

    record = InvocationRecord(
        timestamp=datetime.now(timezone.utc),
        original_cmd=original_cmd,
        rtk_cmd=rtk_cmd,
        input_tokens=counts.input_tokens,
        output_tokens=counts.output_tokens
    )
    try:
        insert_record(record, settings.db_path)
    except StoreUnavailableError as e:
        _fail(str(e))
    sys.exit(EXIT_CODE_PASS)


@app.command()
def gain(
    ctx: typer.Context,
    daily: bool = typer.Option(False, "--daily", "-d", help="Show day-by-day breakdown"),
    weekly: bool = typer.Option(False, "--weekly", "-w", help="Show week-by-week breakdown"),
    monthly: bool = typer.Option(False, "--monthly", "-m", help="Show month-by-month breakdown"),
    all_views: bool = typer.Option(False, "--all", "-a", help="Show all breakdowns"),
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json or csv"
    ),
    graph: bool = typer.Option(False, "--graph", "-g", help="Show daily savings graph"),
    history: bool = typer.Option(False, "--history", "-H", help="Show recent commands"),
    quota: bool = typer.Option(False, "--quota", "-q", help="Show monthly quota estimate"),
    tier: str = typer.Option("pro", "--tier", "-t", help="Quota tier: pro, 5x or 20x")
):
    """
    Show token savings.

    With --daily, --weekly, --monthly or --all the history is broken down
    into time buckets. Without them a lifetime overview is shown.
    """
    settings = _settings(ctx)
    try:
        fmt = parse_format(output_format)
    except UnsupportedFormatError as e:
        _fail(str(e))

    views = resolve_views(daily=daily, weekly=weekly, monthly=monthly, all_views=all_views)
    overview = not views and fmt is ExportFormat.TEXT

    try:
        fetched, recent = _fetch(settings, with_recent=overview and history)
    except StoreUnavailableError as e:
        _fail(str(e))

    if overview:
        quota_tier = QuotaTier.from_key(tier) if quota else None
        _print_overview(fetched, recent, settings, graph=graph, quota_tier=quota_tier)
        sys.exit(EXIT_CODE_PASS)

    report = compose_report(fetched.records, views, settings, skipped_records=fetched.skipped)
    typer.echo(render(report, fmt), nl=False)
    sys.exit(EXIT_CODE_PASS)


def _print_overview(
    fetched: FetchResult,
    recent,
    settings: Settings,
    graph: bool,
    quota_tier: Optional[QuotaTier]
) -> None:
    report = compose_report(fetched.records, set(), settings, skipped_records=fetched.skipped)
    days = aggregate_daily(fetched.records, settings.tz) if graph else None
    typer.echo(render_overview(
        report.summary,
        aggregate_by_command(fetched.records, BY_COMMAND_LIMIT),
        days=days,
        recent=recent,
        tier=quota_tier,
        tz=settings.tz
    ), nl=False)
    if fetched.skipped:
        typer.echo(f"Note: {fetched.skipped} malformed record(s) skipped.")


@app.command()
def compact(ctx: typer.Context):
    """Print a one-line savings summary."""
    settings = _settings(ctx)
    try:
        fetched, _ = _fetch(settings)
    except StoreUnavailableError as e:
        _fail(str(e))
    report = compose_report(fetched.records, set(), settings)
    typer.echo(render_compact(report.summary), nl=False)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
