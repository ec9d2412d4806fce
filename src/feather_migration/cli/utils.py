"""
Utility functions for CLI commands.

This module provides helper functions for console output (messages, tables,
spinners and countdowns) and the console implementation of the migration
prompts.
"""

import asyncio
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import click
from rich.console import Console
from rich.status import Status
from rich.table import Table

from feather_migration.migration.coordinator import MigrationPrompts
from feather_migration.migration.results import StepResult
from feather_migration.resources import StepInfo

console = Console()


def echo_success(message: str) -> None:
    """Print success message in green."""
    click.secho(f"✓ {message}", fg="green")


def echo_error(message: str) -> None:
    """Print error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def echo_warning(message: str) -> None:
    """Print warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def echo_info(message: str) -> None:
    """Print info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def echo_step_running(message: str) -> None:
    """Print running/in-progress step with cyan double colon."""
    click.secho(f":: {message}", fg="cyan")


def echo_step_skipped(message: str) -> None:
    click.secho(f"• {message}", fg="white")


@contextmanager
def step_progress(message: str) -> Generator[None, None, None]:
    """Context manager with live spinner for step progress.

    Shows a Rich spinner with message while the context is active,
    then shows "✓ message" on success or "✗ message" on failure.

    Args:
        message: The step description to display
    """
    status = Status(f"[cyan]{message}...[/cyan]", spinner="dots", console=console)
    status.start()

    succeeded = False
    try:
        yield
        succeeded = True
    finally:
        status.stop()
        if succeeded:
            console.print(f"[green]✓[/green] {message}")
        else:
            console.print(f"[red]✗[/red] {message}")


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "2h 30m 15s")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = minutes // 60
    remaining_minutes = minutes % 60

    return f"{hours}h {remaining_minutes}m {remaining_seconds}s"


def format_timestamp(dt: datetime | None) -> str:
    """Format timestamp in human-readable format."""
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_count(count: int) -> str:
    """Format large numbers with thousands separator."""
    return f"{count:,}"


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[Any]],
    show_header: bool = True,
) -> None:
    """
    Print a formatted table using rich.

    Args:
        title: Table title
        columns: Column headers
        rows: List of row data
        show_header: Whether to show header row
    """
    table = Table(title=title, show_header=show_header)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def print_stats(stats: dict[str, Any], title: str = "Statistics") -> None:
    """
    Print migration statistics in a formatted table.

    Args:
        stats: Dictionary of statistics
        title: Table title
    """
    rows = [[key.replace("_", " ").title(), str(value)] for key, value in stats.items()]
    print_table(title, ["Metric", "Value"], rows)


async def countdown(message: str, seconds: int) -> None:
    """Count down on the console, one line per second.

    Ctrl+C while counting cancels the surrounding run.
    """
    for remaining in range(seconds, 0, -1):
        console.print(f"[yellow]{message} in {remaining}...[/yellow] (Ctrl+C to cancel)")
        await asyncio.sleep(1)


class ConsolePrompts(MigrationPrompts):
    """Migration prompts rendered on the terminal."""

    def step_skipped(self, step_id: str, title: str) -> None:
        echo_step_skipped(f"{title} - already completed, skipping")

    def step_started(self, step_id: str, title: str) -> None:
        click.echo()
        echo_step_running(title)

    def step_completed(self, step_id: str, title: str, result: StepResult) -> None:
        message = (
            f"{title}: {format_count(result.imported_count)} imported, "
            f"{format_count(result.failed_count)} failed"
        )
        if result.skipped_count:
            message += f", {format_count(result.skipped_count)} skipped"

        if result.failed_count:
            echo_warning(message)
        else:
            echo_success(message)

    def step_failed(self, step_id: str, title: str, reason: str) -> None:
        echo_error(f"{title} failed: {reason}")

    async def countdown(self, step: StepInfo, item_count: int, seconds: int) -> None:
        label = step.entity.replace("_", " ") if step.entity else "settings"
        echo_info(f"Found {format_count(item_count)} {label} record(s) to import")
        await countdown("Starting import", seconds)
