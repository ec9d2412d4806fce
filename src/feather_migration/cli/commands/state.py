"""
State management commands.

This module provides commands for inspecting and clearing the migration
progress file.
"""

import click

from feather_migration.cli.context import MigrationContext
from feather_migration.cli.decorators import handle_errors, pass_context
from feather_migration.cli.utils import (
    echo_info,
    echo_success,
    echo_warning,
    format_count,
    format_timestamp,
    print_stats,
    print_table,
)
from feather_migration.client.exceptions import StateError
from feather_migration.resources import MIGRATION_STEPS, next_pending_step
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="state")
def state() -> None:
    """Migration state management commands.

    Inspect and reset the progress file used to resume a migration.
    """
    pass


@state.command(name="show")
@pass_context
@handle_errors
def show_state(ctx: MigrationContext) -> None:
    """Show the saved migration progress.

    Examples:

        feather-bridge state show
    """
    store = ctx.store
    migration_state = store.load()

    if migration_state is None:
        echo_info(f"No migration progress found at {store.path}")
        return

    click.echo()
    click.echo("Migration Information:")
    click.echo(f"  Progress file: {store.path}")
    click.echo(f"  Pterodactyl path: {migration_state.pterodactyl_path or '-'}")
    click.echo(f"  Started: {format_timestamp(migration_state.started_at)}")
    click.echo(f"  Last updated: {format_timestamp(migration_state.last_updated)}")

    details = migration_state.step_details
    rows = []
    for info in MIGRATION_STEPS:
        done = migration_state.is_step_completed(info.step_id)
        mapped = details.get(info.produces[0]) if info.produces else None
        rows.append(
            [
                info.order,
                info.title,
                "completed" if done else "pending",
                format_count(len(mapped)) if isinstance(mapped, dict) else "-",
            ]
        )

    click.echo()
    print_table("Steps", ["#", "Step", "Status", "Mapped IDs"], rows)

    stats = {
        "status": migration_state.status.value,
        "steps_completed": f"{len(migration_state.completed_steps)}/{len(MIGRATION_STEPS)}",
        "current_step": migration_state.current_step or "-",
        "last_completed_step": migration_state.last_completed_step or "-",
    }
    pending = next_pending_step(migration_state.completed_steps)
    if pending is not None and not migration_state.is_finished:
        stats["next_step"] = pending.title
    print_stats(stats, "State Summary")

    if migration_state.error_message:
        click.echo()
        echo_warning(f"Last error: {migration_state.error_message}")


@state.command(name="clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
@handle_errors
def clear_state(ctx: MigrationContext, yes: bool) -> None:
    """Delete the progress file so the next run starts from scratch.

    Examples:

        feather-bridge state clear --yes
    """
    store = ctx.store

    if not store.exists():
        echo_info(f"No migration progress found at {store.path}")
        return

    if not yes and not click.confirm(
        f"Delete the migration progress at {store.path}? The next run will start from step 1",
        default=False,
    ):
        click.echo("Operation cancelled.")
        raise click.exceptions.Exit(0)

    if not store.clear():
        raise StateError(f"Could not delete the progress file {store.path}")

    echo_success("Migration progress cleared")


@state.command(name="path")
@pass_context
def state_path(ctx: MigrationContext) -> None:
    """Print the location of the progress file."""
    click.echo(str(ctx.store.path))
