"""
Decorators for CLI commands.

This module provides decorators for error handling and context passing.
"""

import functools
from collections.abc import Callable

import click

from feather_migration.cli.context import MigrationContext
from feather_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    MigrationError,
    NetworkError,
    SourceError,
    StateError,
)
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass MigrationContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: MigrationContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        migration_ctx: MigrationContext = click_ctx.obj
        return f(migration_ctx, *args, **kwargs)

    return wrapper


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    Exit codes:
        0: Success
        1: General error or failed migration
        2: Configuration error
        3: Authentication error
        4: API error
        5: State error
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except click.ClickException:
            raise

        except ConfigurationError as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "\nPlease check your configuration file and ensure all required fields are set.",
                err=True,
            )
            raise click.exceptions.Exit(2) from e

        except SourceError as e:
            logger.error("source_error", error=str(e))
            click.echo(f"Source Error: {e}", err=True)
            click.echo(
                "\nPlease check the Pterodactyl installation path and its database access.",
                err=True,
            )
            raise click.exceptions.Exit(2) from e

        except (AuthenticationError, AuthorizationError) as e:
            logger.error("authentication_error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo(
                "\nPlease verify the FeatherPanel API key and its admin.root permission.",
                err=True,
            )
            raise click.exceptions.Exit(3) from e

        except (APIError, NetworkError) as e:
            status_code = getattr(e, "status_code", None)
            logger.error("api_error", error=str(e), status_code=status_code)
            click.echo(f"API Error: {e}", err=True)
            if status_code:
                click.echo(f"\nResponse status: {status_code}", err=True)
            raise click.exceptions.Exit(4) from e

        except StateError as e:
            logger.error("state_error", error=str(e))
            click.echo(f"State Error: {e}", err=True)
            click.echo(
                "\nThere was an error accessing the migration progress file.",
                err=True,
            )
            raise click.exceptions.Exit(5) from e

        except MigrationError as e:
            logger.error("migration_error", error=str(e))
            click.echo(f"Migration Error: {e}", err=True)
            raise click.exceptions.Exit(1) from e

        except Exception as e:
            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(1) from e

    return wrapper
