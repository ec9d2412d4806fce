"""
Migration execution commands.

This module provides the interactive wizard that migrates a Pterodactyl
panel into FeatherPanel: target checks, installation checks, database
checks, maintenance mode and the fifteen import steps.
"""

import asyncio
from pathlib import Path

import click
from sqlalchemy.engine import Engine

from feather_migration.cli.context import MigrationContext
from feather_migration.cli.decorators import handle_errors, pass_context
from feather_migration.cli.utils import (
    ConsolePrompts,
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    format_count,
    format_duration,
    print_stats,
    print_table,
    step_progress,
)
from feather_migration.client.exceptions import (
    MigrationAlreadyCompletedError,
    MigrationCancelledError,
    SourceError,
    StepFailedError,
)
from feather_migration.config import (
    DEFAULT_PTERODACTYL_PATH,
    MigrationOptions,
    PterodactylEnv,
    load_pterodactyl_env,
)
from feather_migration.migration.coordinator import MigrationCoordinator, MigrationSummary
from feather_migration.migration.state import MigrationState
from feather_migration.source.database import (
    check_required_tables,
    create_source_engine,
    verify_connection,
)
from feather_migration.source.installation import (
    enable_maintenance_mode,
    is_in_maintenance,
    validate_installation,
)
from feather_migration.source.reader import PterodactylReader
from feather_migration.utils.crypto import LaravelDecryptor
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

NEXT_STEPS = (
    (
        "Install FeatherWings on your nodes",
        "curl -fsSL https://get.featherpanel.com/beta.sh | bash",
    ),
    (
        "Copy the node configuration",
        "Download config.yml from the FeatherPanel admin panel onto each node",
    ),
    (
        "Install the Pterodactyl Panel API plugin (recommended)",
        "Keeps existing Pterodactyl API integrations working",
    ),
    (
        "Replace Wings with FeatherWings",
        "sudo systemctl disable --now wings && sudo systemctl enable --now featherwings",
    ),
)


@click.group(name="migrate")
def migrate() -> None:
    """Migration execution commands.

    Migrate a Pterodactyl panel into FeatherPanel.
    """
    pass


@migrate.command(name="run")
@click.option(
    "--pterodactyl-dir",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help=f"Pterodactyl installation directory (default: {DEFAULT_PTERODACTYL_PATH})",
)
@click.option(
    "--confirm-migrate",
    "--yes",
    "-y",
    "yes",
    is_flag=True,
    help="Skip confirmation prompts",
)
@click.option(
    "--confirm-blueprint",
    is_flag=True,
    help="Continue without asking when Blueprint is installed",
)
@click.option(
    "--reset",
    is_flag=True,
    help="Discard saved progress and start from the first step",
)
@click.option(
    "--countdown",
    "countdown_seconds",
    type=click.IntRange(0, 60),
    default=None,
    help="Seconds to wait before each step writes data (0 disables)",
)
@click.option(
    "--skip-maintenance",
    is_flag=True,
    help="Do not put the Pterodactyl panel into maintenance mode",
)
@pass_context
@handle_errors
def run(
    ctx: MigrationContext,
    pterodactyl_dir: Path | None,
    yes: bool,
    confirm_blueprint: bool,
    reset: bool,
    countdown_seconds: int | None,
    skip_maintenance: bool,
) -> None:
    """Run the Pterodactyl to FeatherPanel migration.

    Completed steps are skipped, so running the command again after a
    failure resumes where the previous run stopped.

    Examples:

        # Interactive migration
        feather-bridge migrate run --config config.yaml

        # Unattended migration of a custom installation path
        feather-bridge migrate run -p /srv/pterodactyl --yes --confirm-blueprint

        # Start over
        feather-bridge migrate run --reset
    """
    config = ctx.config
    update: dict[str, object] = {
        "skip_confirmations": yes or config.options.skip_confirmations,
        "skip_blueprint_confirmation": confirm_blueprint
        or config.options.skip_blueprint_confirmation,
        "enable_maintenance_mode": config.options.enable_maintenance_mode
        and not skip_maintenance,
    }
    if countdown_seconds is not None:
        update["countdown_seconds"] = countdown_seconds
    options = config.options.model_copy(update=update)

    store = ctx.store
    resume = _decide_resume(ctx, reset, options)

    try:
        summary = asyncio.run(_run_wizard(ctx, options, pterodactyl_dir, reset, resume))
    except StepFailedError as e:
        click.echo()
        echo_error(f"Migration stopped at {e.title}: {e.reason}")
        echo_info(f"Progress saved to {store.path}")
        echo_info("Fix the problem and run 'feather-bridge migrate run' again to resume.")
        raise click.exceptions.Exit(1) from e
    except MigrationCancelledError as e:
        click.echo()
        echo_warning("Migration cancelled by user")
        echo_info(f"Progress saved to {store.path}")
        raise click.exceptions.Exit(1) from e

    if summary is not None:
        _display_summary(summary)


def _decide_resume(ctx: MigrationContext, reset: bool, options: MigrationOptions) -> bool:
    """Look at saved progress and ask whether to continue it."""
    if reset:
        return False

    existing = ctx.store.load()
    if existing is None:
        return False

    if existing.is_finished:
        echo_success("Migration has already been completed.")
        echo_info(
            f"Run 'feather-bridge state clear' to remove {ctx.store.path} and migrate again."
        )
        raise click.exceptions.Exit(0)

    _display_saved_progress(existing)
    if options.skip_confirmations:
        return True
    return click.confirm("Resume the previous migration?", default=True)


def _display_saved_progress(state: MigrationState) -> None:
    echo_warning("A previous migration was found")
    rows = [
        ["Status", state.status.value],
        ["Pterodactyl path", state.pterodactyl_path or "-"],
        ["Completed steps", len(state.completed_steps)],
        ["Last completed step", state.last_completed_step or "-"],
    ]
    if state.error_message:
        rows.append(["Last error", state.error_message])
    print_table("Saved Progress", ["Field", "Value"], rows)


async def _run_wizard(
    ctx: MigrationContext,
    options: MigrationOptions,
    pterodactyl_dir: Path | None,
    reset: bool,
    resume: bool,
) -> MigrationSummary | None:
    client = ctx.target_client
    engine: Engine | None = None

    try:
        with step_progress("Checking FeatherPanel session"):
            session = await client.ensure_admin()
        echo_info(f"Authenticated as {session.username}")

        if not resume:
            with step_progress("Checking FeatherPanel prerequisites"):
                report = await client.check_prerequisites()
            if not report.is_acceptable:
                rows = [
                    [name.title(), format_count(count)]
                    for name, count in report.blocking_counts.items()
                ]
                if rows:
                    print_table("Existing Data on FeatherPanel", ["Entity", "Count"], rows)
                echo_error(
                    "FeatherPanel must be a fresh installation with at most one user "
                    "before migrating"
                )
                raise click.exceptions.Exit(1)

        path = _resolve_pterodactyl_path(ctx, pterodactyl_dir, resume, options)

        with step_progress(f"Validating Pterodactyl installation at {path}"):
            installation = validate_installation(path)
        for item in installation.missing_optional:
            echo_warning(f"Optional item not found: {item}")

        if installation.has_blueprint and not _confirm_blueprint(options):
            echo_info("Migration cancelled.")
            raise click.exceptions.Exit(0)

        env = load_pterodactyl_env(path)
        decryptor = _build_decryptor(env)

        database_url = ctx.config.source.database_url or env.database_url()
        engine = create_source_engine(database_url)
        with step_progress("Connecting to the Pterodactyl database"):
            verify_connection(engine)

        _, missing_tables = check_required_tables(engine)
        if missing_tables:
            raise SourceError(
                f"Pterodactyl database is missing required tables: {', '.join(missing_tables)}"
            )
        echo_success("All required tables are present")

        if options.enable_maintenance_mode:
            _enter_maintenance(path)

        coordinator = MigrationCoordinator(
            store=ctx.store,
            reader=PterodactylReader(engine),
            client=client,
            decryptor=decryptor,
            env=env,
            options=options,
            prompts=ConsolePrompts(),
        )
        coordinator.prepare(
            reset=reset,
            confirm_resume=lambda _state: resume,
            pterodactyl_path=str(path),
        )

        if not options.skip_confirmations and not click.confirm(
            "Start the migration now?", default=False
        ):
            coordinator.cancel()
            raise MigrationCancelledError("Migration cancelled by user")

        return await coordinator.run()

    except MigrationAlreadyCompletedError:
        echo_success("Migration has already been completed.")
        return None
    finally:
        await ctx.aclose()
        if engine is not None:
            engine.dispose()


def _resolve_pterodactyl_path(
    ctx: MigrationContext,
    pterodactyl_dir: Path | None,
    resume: bool,
    options: MigrationOptions,
) -> Path:
    if pterodactyl_dir is not None:
        return pterodactyl_dir

    if ctx.config.source.pterodactyl_path:
        return Path(ctx.config.source.pterodactyl_path)

    if resume:
        saved = ctx.store.load()
        if saved is not None and saved.pterodactyl_path:
            return Path(saved.pterodactyl_path)

    if options.skip_confirmations:
        return Path(DEFAULT_PTERODACTYL_PATH)

    return Path(
        click.prompt(
            "Pterodactyl installation directory",
            default=DEFAULT_PTERODACTYL_PATH,
            type=click.Path(file_okay=False),
        )
    )


def _confirm_blueprint(options: MigrationOptions) -> bool:
    echo_warning("Blueprint is installed on this Pterodactyl panel")
    click.echo(
        "  Blueprint extensions and their data are not migrated, and extensions that\n"
        "  changed core tables may cause individual records to fail."
    )
    if options.skip_blueprint_confirmation:
        return True
    return click.confirm("Continue with the migration?", default=False)


def _build_decryptor(env: PterodactylEnv) -> LaravelDecryptor | None:
    if not env.app_key:
        echo_warning(
            "APP_KEY is not set in the Pterodactyl .env file; "
            "nodes, database hosts and server databases cannot be migrated"
        )
        return None
    return LaravelDecryptor(env.app_key)


def _enter_maintenance(path: Path) -> None:
    if is_in_maintenance(path):
        echo_info("Pterodactyl is already in maintenance mode")
        return

    with step_progress("Enabling Pterodactyl maintenance mode"):
        enabled = enable_maintenance_mode(path)
    if not enabled:
        echo_warning(
            "Could not enable maintenance mode; users may change data during the migration"
        )


def _display_summary(summary: MigrationSummary) -> None:
    click.echo()
    rows = []
    for step in summary.steps:
        status = "already completed" if step.already_completed else "done"
        rows.append(
            [
                step.title,
                format_count(step.imported),
                format_count(step.failed),
                format_count(step.skipped),
                status,
            ]
        )
    print_table("Migration Summary", ["Step", "Imported", "Failed", "Skipped", "Status"], rows)

    stats: dict[str, object] = {
        "steps_executed": summary.steps_executed,
        "total_imported": format_count(summary.total_imported),
        "total_failed": format_count(summary.total_failed),
        "total_skipped": format_count(summary.total_skipped),
    }
    if summary.duration_seconds is not None:
        stats["duration"] = format_duration(summary.duration_seconds)
    print_stats(stats, "Totals")

    click.echo()
    if summary.total_failed:
        echo_warning(
            f"{format_count(summary.total_failed)} record(s) failed to import; "
            "see the log file for details"
        )
    echo_success("Migration completed")

    click.echo()
    click.secho("Next steps:", bold=True)
    for number, (title, detail) in enumerate(NEXT_STEPS, start=1):
        click.echo(f"  {number}. {title}")
        click.echo(f"     {detail}")
