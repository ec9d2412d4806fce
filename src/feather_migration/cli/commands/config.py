"""
Configuration management commands.

This module provides commands for validating, displaying and exporting the
migration configuration.
"""

import asyncio
from pathlib import Path

import click

from feather_migration.cli.context import MigrationContext
from feather_migration.cli.decorators import handle_errors, pass_context
from feather_migration.cli.utils import (
    echo_info,
    echo_success,
    echo_warning,
    print_table,
    step_progress,
)
from feather_migration.config import (
    DEFAULT_PTERODACTYL_PATH,
    MigrationConfig,
    save_config_to_yaml,
)
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands.

    Validate and display the migration configuration.
    """
    pass


@config.command(name="validate")
@click.option(
    "--check-connectivity",
    is_flag=True,
    help="Check the FeatherPanel API key and its admin permission",
)
@pass_context
@handle_errors
def validate(ctx: MigrationContext, check_connectivity: bool) -> None:
    """Validate migration configuration.

    Loads the configuration file (or the FEATHER_BRIDGE_* environment
    variables) and reports problems before a migration is attempted.

    Examples:

        # Basic validation
        feather-bridge config validate --config config.yaml

        # Validate and test the FeatherPanel API key
        feather-bridge config validate --config config.yaml --check-connectivity
    """
    source = str(ctx.config_path) if ctx.config_path else "environment"
    echo_info(f"Validating configuration: {source}")

    config = ctx.config

    click.echo()
    _display_config_summary(config)

    click.echo()
    _validate_paths(config)

    if check_connectivity:
        click.echo()
        asyncio.run(_check_target(ctx))

    click.echo()
    echo_success("Configuration is valid!")


@config.command(name="export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@pass_context
@handle_errors
def export(ctx: MigrationContext, output: Path, force: bool) -> None:
    """Write the effective configuration to a YAML file.

    The API key is written as a ${FEATHER_BRIDGE_API_KEY} reference so the
    file can be committed or shared.

    Examples:

        # Turn FEATHER_BRIDGE_* environment variables into a config file
        feather-bridge config export config.yaml
    """
    if output.exists() and not force:
        raise click.ClickException(f"{output} already exists (use --force to overwrite)")

    save_config_to_yaml(ctx.config, output)
    logger.info("config_exported", path=str(output))
    echo_success(f"Configuration written to {output}")
    echo_info("Set FEATHER_BRIDGE_API_KEY before using it")


def _display_config_summary(config: MigrationConfig) -> None:
    """Display configuration summary."""
    rows = [
        ["FeatherPanel URL", config.target.url],
        ["API Key", "*" * 12 + " (masked)"],
        ["Verify SSL", config.target.verify_ssl],
        ["Pterodactyl Path", config.source.pterodactyl_path or DEFAULT_PTERODACTYL_PATH],
        ["Database URL", "from config" if config.source.database_url else "from panel .env"],
        ["Progress File", config.progress.file],
        ["Countdown (s)", config.options.countdown_seconds],
        ["Maintenance Mode", config.options.enable_maintenance_mode],
    ]

    print_table("Configuration Summary", ["Setting", "Value"], rows)


def _validate_paths(config: MigrationConfig) -> None:
    """Warn about paths that will be needed during the migration."""
    progress_dir = Path(config.progress.file).resolve().parent
    if not progress_dir.is_dir():
        echo_warning(f"Progress file directory does not exist yet: {progress_dir}")
    else:
        echo_success(f"Progress file directory exists: {progress_dir}")

    panel_path = Path(config.source.pterodactyl_path or DEFAULT_PTERODACTYL_PATH)
    if (panel_path / ".env").is_file():
        echo_success(f"Pterodactyl installation found: {panel_path}")
    else:
        echo_warning(f"No Pterodactyl .env found in {panel_path}")


async def _check_target(ctx: MigrationContext) -> None:
    try:
        with step_progress(f"Checking FeatherPanel API at {ctx.config.target.url}"):
            session = await ctx.target_client.ensure_admin()
    finally:
        await ctx.aclose()
    echo_success(f"Authenticated as {session.username} with admin.root")
