"""
Follower Insights CLI

Command-line interface for processing Instagram follower data exports.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from follower_insights.errors import FollowerInsightsError
from follower_insights.models.entities import Category
from follower_insights.models.timeline import TIMEFRAMES

# Initialize console for rich output
console = Console()


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging with rich handler."""
    handlers = [RichHandler(console=console, show_path=False)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=handlers,
    )


def _open_store(ctx: click.Context):
    from follower_insights.storage import get_store

    config = ctx.obj["config"]
    path = ctx.obj.get("db_path") or config.storage.path
    return get_store(path)


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--config", "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config file (default: config.yaml)",
)
@click.option(
    "--db",
    "db_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Session database path (overrides storage.path)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    config_path: Optional[str],
    db_path: Optional[str],
) -> None:
    """Follower Insights - See who follows you back."""
    from follower_insights.utils.config import load_config

    ctx.ensure_object(dict)

    try:
        config = load_config(Path(config_path) if config_path else None)
    except FollowerInsightsError as e:
        _fail(str(e))

    if verbose:
        ctx.obj["log_level"] = "DEBUG"
    elif quiet:
        ctx.obj["log_level"] = "WARNING"
    else:
        ctx.obj["log_level"] = config.logging.level

    ctx.obj["config"] = config
    ctx.obj["db_path"] = db_path

    setup_logging(ctx.obj["log_level"], config.logging.file)


@cli.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    "output_dir",
    default=None,
    type=click.Path(file_okay=False, dir_okay=True),
    help="Output directory for reports",
)
@click.option(
    "--format", "-f",
    "formats",
    multiple=True,
    type=click.Choice(["csv", "markdown", "json"]),
    help="Output formats to generate",
)
@click.option(
    "--no-reports",
    is_flag=True,
    help="Only persist the session, skip report generation",
)
@click.pass_context
def process(
    ctx: click.Context,
    archive: str,
    output_dir: Optional[str],
    formats: tuple[str, ...],
    no_reports: bool,
) -> None:
    """Process an Instagram export archive into a new analysis session."""
    from follower_insights.pipeline.outputs import generate_outputs
    from follower_insights.pipeline.service import process_archive

    config = ctx.obj["config"]

    console.print("\n[bold blue]Follower Insights[/bold blue]")
    console.print("=" * 50)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Processing export archive...", total=None)
        try:
            store = _open_store(ctx)
            summary = process_archive(archive, store, config)
            progress.update(task, completed=True)
        except FollowerInsightsError as e:
            progress.update(task, completed=True)
            console.print(f"  [red]✗[/red] Processing failed: {e}")
            sys.exit(1)

        console.print(
            f"  [green]✓[/green] Loaded {summary.followers_count} followers, "
            f"{summary.following_count} following"
        )

        diagnostics = summary.diagnostics
        if diagnostics.degraded_decodes or diagnostics.undecodable_fragments:
            console.print(
                f"  [yellow]![/yellow] {diagnostics.degraded_decodes} files recovered from markup, "
                f"{diagnostics.undecodable_fragments} could not be decoded"
            )

        output_files = {}
        if not no_reports:
            task = progress.add_task("Generating reports...", total=None)
            output_files = generate_outputs(
                store,
                summary.session_id,
                output_dir=output_dir or config.output.directory,
                formats=list(formats) or config.output.formats,
                timestamp_filenames=config.output.timestamp_filenames,
                rapid_change_threshold=config.timeline.rapid_change_threshold,
            )
            progress.update(task, completed=True)

    console.print(f"\n[bold]Session:[/bold] {summary.session_id}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Category")
    table.add_column("Count", justify="right")
    table.add_row("Mutual", str(summary.mutual_count))
    table.add_row("Followers only", str(summary.followers_only_count))
    table.add_row("Following only", str(summary.following_only_count))
    table.add_row("Pending requests", str(summary.pending_requests_count))
    table.add_row("Unfollowed", str(summary.total_unfollows))
    table.add_row("Timeline events", str(summary.total_events))
    console.print(table)

    if output_files:
        console.print("\n[bold]Reports Generated:[/bold]")
        for report_type, files in output_files.items():
            for fmt, path in files.items():
                console.print(f"  • {report_type}.{fmt}: [cyan]{path}[/cyan]")

    console.print()


@cli.command("list")
@click.argument("session_id")
@click.argument("category", type=click.Choice([c.value for c in Category]))
@click.option("--search", "-s", default=None, help="Filter handles containing this text")
@click.option("--page", "-p", default=1, type=int, help="Page number (1-based)")
@click.option("--limit", "-l", default=None, type=int, help="Items per page")
@click.pass_context
def list_category(
    ctx: click.Context,
    session_id: str,
    category: str,
    search: Optional[str],
    page: int,
    limit: Optional[int],
) -> None:
    """List one category of a session."""
    from follower_insights.pipeline.query import QueryService

    config = ctx.obj["config"]
    service = QueryService(_open_store(ctx), max_limit=config.query.max_limit)

    try:
        result = service.list(
            session_id,
            category,
            search=search,
            page=page,
            limit=config.query.default_limit if limit is None else limit,
        )
    except FollowerInsightsError as e:
        _fail(str(e))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Handle")
    table.add_column("Profile")
    if category == Category.UNFOLLOWED.value:
        table.add_column("Unfollowed")
        table.add_column("Source")
        for item in result.items:
            table.add_row(
                item.handle,
                item.profile_url or "",
                datetime.fromtimestamp(item.unfollowed_at).strftime("%Y-%m-%d %H:%M"),
                item.source.value,
            )
    else:
        for item in result.items:
            table.add_row(item.handle, item.profile_url or "")

    console.print(table)
    console.print(
        f"[dim]Page {result.page} of {result.total_pages} ({result.total} total)[/dim]"
    )


@cli.command()
@click.argument("session_id")
@click.option(
    "--timeframe", "-t",
    default="all",
    type=click.Choice(list(TIMEFRAMES)),
    help="Time window to report on",
)
@click.pass_context
def timeline(ctx: click.Context, session_id: str, timeframe: str) -> None:
    """Show growth statistics for a session."""
    from follower_insights.models.timeline import detect_rapid_changes
    from follower_insights.pipeline.query import QueryService

    config = ctx.obj["config"]
    service = QueryService(_open_store(ctx), max_limit=config.query.max_limit)

    try:
        view = service.get_timeline(session_id, timeframe)
    except FollowerInsightsError as e:
        _fail(str(e))

    stats = view.statistics
    console.print(f"\n[bold]Growth ({timeframe}):[/bold]")
    table = Table(show_header=False)
    table.add_column("Window", style="bold")
    table.add_column("Net", justify="right")
    table.add_row("Last day", f"{stats.daily_growth:+d}")
    table.add_row("Last 7 days", f"{stats.weekly_growth:+d}")
    table.add_row("Last 30 days", f"{stats.monthly_growth:+d}")
    table.add_row("All time", f"{stats.all_time_growth:+d}")
    table.add_row("Events", str(len(view.events)))
    console.print(table)

    changes = detect_rapid_changes(view.events, config.timeline.rapid_change_threshold)
    if changes:
        console.print("\n[bold]Rapid Changes:[/bold]")
        for change in changes:
            console.print(f"  • {change.date}: {change.type} ({change.change:+d})")

    console.print()


@cli.command()
@click.argument("session_id")
@click.option(
    "--category",
    default=None,
    type=click.Choice([c.value for c in Category if c.is_relationship]),
    help="Export a single relationship category",
)
@click.option(
    "--output", "-o",
    "output_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="File to write (default: print to stdout)",
)
@click.pass_context
def export(
    ctx: click.Context,
    session_id: str,
    category: Optional[str],
    output_path: Optional[str],
) -> None:
    """Export a session's relationships as CSV."""
    from follower_insights.pipeline.outputs import export_csv

    try:
        content = export_csv(_open_store(ctx), session_id, category)
    except FollowerInsightsError as e:
        _fail(str(e))

    if output_path is None:
        click.echo(content)
        return

    Path(output_path).write_text(content)
    console.print(f"Exported to [cyan]{output_path}[/cyan]")


@cli.command()
@click.option("--limit", "-l", default=10, type=int, help="Number of sessions to show")
@click.pass_context
def sessions(ctx: click.Context, limit: int) -> None:
    """Show recent analysis sessions."""
    recent = _open_store(ctx).list_sessions(limit)

    if not recent:
        console.print("[yellow]No sessions found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Session")
    table.add_column("Created")
    table.add_column("Followers", justify="right")
    table.add_column("Following", justify="right")
    table.add_column("Mutual", justify="right")
    table.add_column("Unfollows", justify="right")

    for s in recent:
        table.add_row(
            s.session_id,
            s.created_at.strftime("%Y-%m-%d %H:%M"),
            str(s.followers_count),
            str(s.following_count),
            str(s.mutual_count),
            str(s.total_unfollows),
        )

    console.print(table)


@cli.command()
@click.option(
    "--days", "-d",
    default=None,
    type=int,
    help="Delete sessions older than this many days (default: storage.retention_days)",
)
@click.pass_context
def cleanup(ctx: click.Context, days: Optional[int]) -> None:
    """Delete old analysis sessions."""
    config = ctx.obj["config"]
    days = config.storage.retention_days if days is None else days

    try:
        removed = _open_store(ctx).cleanup(days)
    except FollowerInsightsError as e:
        _fail(str(e))

    console.print(f"Removed {removed} sessions older than {days} days")


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from follower_insights import __version__

    console.print(f"Follower Insights v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
