"""
Main CLI entry point for Feather Bridge.

This module provides the command-line interface for migrating a
Pterodactyl panel into FeatherPanel.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from feather_migration import __version__
from feather_migration.cli.commands import config as config_commands
from feather_migration.cli.commands import migrate as migrate_commands
from feather_migration.cli.commands import state as state_commands
from feather_migration.cli.context import MigrationContext
from feather_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

DEFAULT_LOG_FILE = "logs/migration.log"


@click.group()
@click.version_option(version=__version__, prog_name="feather-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="FEATHER_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Set console logging level (file logging stays at DEBUG)",
    envvar="FEATHER_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    envvar="FEATHER_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str,
    log_file: Path | None,
) -> None:
    """Feather Bridge - Migrate a Pterodactyl panel into FeatherPanel.

    Reads the Pterodactyl database directly and imports locations, nests,
    eggs, nodes, allocations, users, servers and their dependents through
    the FeatherPanel importer API. Interrupted migrations resume from the
    first step that did not complete.

    Examples:

        # Validate configuration
        feather-bridge config validate --config config.yaml

        # Run the migration
        feather-bridge migrate run --config config.yaml

        # Show migration progress
        feather-bridge state show
    """
    effective_log_file = Path(log_file) if log_file else Path(DEFAULT_LOG_FILE)
    effective_log_file.parent.mkdir(parents=True, exist_ok=True)

    configure_logging(level=log_level, log_file=str(effective_log_file))

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


# Register command groups
cli.add_command(config_commands.config)
cli.add_command(migrate_commands.migrate)
cli.add_command(state_commands.state)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Exit codes raised by commands are returned, not raised, outside standalone mode
        exit_code = cli(standalone_mode=False)
        return exit_code if isinstance(exit_code, int) else 0
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
