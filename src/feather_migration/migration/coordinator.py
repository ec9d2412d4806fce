"""Migration coordinator for the fifteen-step Pterodactyl import.

This module provides the Run Controller: it decides whether a run starts
fresh, resumes or is refused, validates the step dependency graph, runs
every step through the Step Runner in order and records the terminal state.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from feather_migration.client.exceptions import (
    MigrationAlreadyCompletedError,
    MigrationCancelledError,
    StateError,
    StepFailedError,
)
from feather_migration.config import MigrationOptions, PterodactylEnv
from feather_migration.migration.results import StepResult
from feather_migration.migration.runner import StepReporter, StepRunner
from feather_migration.migration.state import MigrationState, ProgressStore
from feather_migration.migration.steps import (
    SourceReader,
    StepContext,
    TargetWriter,
    create_step,
)
from feather_migration.resources import MIGRATION_STEPS, StepInfo, validate_step_order
from feather_migration.utils.crypto import LaravelDecryptor
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

ConfirmResume = Callable[[MigrationState], bool]


class MigrationPrompts(StepReporter):
    """Operator interaction during a run.

    The defaults never block; the CLI overrides them with console output.
    """

    async def countdown(self, step: StepInfo, item_count: int, seconds: int) -> None:
        """Wait before a step writes to the target.

        Raising ``KeyboardInterrupt`` or ``MigrationCancelledError`` cancels the run.
        """
        await asyncio.sleep(0)


@dataclass
class StepSummary:
    step_id: str
    title: str
    imported: int = 0
    failed: int = 0
    skipped: int = 0
    already_completed: bool = False


@dataclass
class MigrationSummary:
    """What one invocation of the migration did."""

    resumed: bool = False
    steps: list[StepSummary] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def total_imported(self) -> int:
        return sum(step.imported for step in self.steps)

    @property
    def total_failed(self) -> int:
        return sum(step.failed for step in self.steps)

    @property
    def total_skipped(self) -> int:
        return sum(step.skipped for step in self.steps)

    @property
    def steps_executed(self) -> int:
        return sum(1 for step in self.steps if not step.already_completed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resumed": self.resumed,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "steps_executed": self.steps_executed,
            "total_imported": self.total_imported,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
        }


class MigrationCoordinator:
    """Coordinates the full migration run.

    Owns the single ``MigrationState`` of the invocation. Step bodies only
    see a read-only view of ``step_details``; the Step Runner is the only
    component that mutates the state.
    """

    def __init__(
        self,
        store: ProgressStore,
        reader: SourceReader,
        client: TargetWriter,
        decryptor: LaravelDecryptor | None = None,
        env: PterodactylEnv | None = None,
        options: MigrationOptions | None = None,
        prompts: MigrationPrompts | None = None,
        steps: tuple[StepInfo, ...] = MIGRATION_STEPS,
    ):
        """Initialize migration coordinator.

        Args:
            store: Progress store of the migration
            reader: Legacy database reader
            client: FeatherPanel importer client
            decryptor: Decryptor built from the panel APP_KEY
            env: Values of the legacy .env file
            options: Migration options (countdown length ...)
            prompts: Operator interaction hooks
            steps: Steps in execution order
        """
        self.store = store
        self.reader = reader
        self.client = client
        self.decryptor = decryptor
        self.env = env
        self.options = options or MigrationOptions()
        self.prompts = prompts or MigrationPrompts()
        self.steps = steps
        self.state: MigrationState | None = None
        self.resumed = False

    def prepare(
        self,
        reset: bool = False,
        confirm_resume: ConfirmResume | None = None,
        pterodactyl_path: str | None = None,
    ) -> MigrationState:
        """Decide how the run starts.

        Args:
            reset: Clear any saved progress and start at step 1
            confirm_resume: Asked whether an unfinished migration should be
                resumed; declining clears it. Resumes when not given.
            pterodactyl_path: Installation path recorded in the state

        Returns:
            The state this run works on

        Raises:
            MigrationAlreadyCompletedError: If the saved migration completed
            StateError: If saved progress has to be discarded but cannot be
        """
        existing: MigrationState | None = None
        if reset:
            self._discard()
            logger.info("migration_progress_reset", path=str(self.store.path))
        else:
            existing = self.store.load()
        state: MigrationState

        if existing is not None and existing.is_finished:
            raise MigrationAlreadyCompletedError(
                "Migration has already been completed. "
                "Clear the progress file to run it again."
            )

        if existing is not None and (confirm_resume is None or confirm_resume(existing)):
            existing.resume()
            state = existing
            self.resumed = True
            logger.info(
                "migration_resumed",
                completed_steps=len(existing.completed_steps),
                last_completed_step=existing.last_completed_step,
            )
        else:
            if existing is not None:
                self._discard()
                logger.info("migration_progress_discarded")
            state = MigrationState.start(pterodactyl_path or "")
            self.resumed = False
            logger.info("migration_started_fresh")

        if pterodactyl_path:
            state.pterodactyl_path = pterodactyl_path

        self.store.save(state)
        self.state = state
        return state

    def _discard(self) -> None:
        if not self.store.clear():
            raise StateError(f"Could not remove the progress file {self.store.path}")

    def cancel(self) -> None:
        """Record an operator abort in the progress file."""
        if self.state is None:
            return
        self.state.mark_cancelled()
        self.store.save(self.state)
        logger.warning("migration_cancelled", path=str(self.store.path))

    async def _before_import(self, step: StepInfo, item_count: int) -> None:
        seconds = self.options.countdown_seconds
        if seconds <= 0:
            return
        try:
            await self.prompts.countdown(step, item_count, seconds)
        except (KeyboardInterrupt, asyncio.CancelledError) as e:
            raise MigrationCancelledError("Migration cancelled by user") from e

    def _context(self, state: MigrationState) -> StepContext:
        return StepContext(
            reader=self.reader,
            writer=self.client,
            step_details=state.step_details,
            env=self.env,
            decryptor=self.decryptor,
            before_import=self._before_import,
        )

    async def run(self) -> MigrationSummary:
        """Run every step not completed yet, in order.

        Returns:
            Summary of the steps of this invocation

        Raises:
            ConfigurationError: If the step order violates a declared dependency
            StepFailedError: If a step failed (already recorded as ``failed``)
            MigrationCancelledError: If the operator cancelled (recorded as ``cancelled``)
        """
        if self.state is None:
            self.prepare()
        state = self.state
        if state is None:
            raise StateError("Migration state is not initialized")

        validate_step_order(self.steps)

        summary = MigrationSummary(resumed=self.resumed, start_time=datetime.now(UTC))
        runner = StepRunner(state, self.store, reporter=self.prompts)

        logger.info(
            "migration_run_started",
            resumed=self.resumed,
            completed_steps=len(state.completed_steps),
            total_steps=len(self.steps),
        )

        for info in self.steps:
            # A fresh context per step so later steps see earlier results
            body = create_step(info.step_id, self._context(state))

            try:
                result = await runner.run(info.step_id, info.title, body.run)
            except MigrationCancelledError:
                self.cancel()
                raise
            except StepFailedError as e:
                logger.error(
                    "migration_halted",
                    step_id=e.step_id,
                    reason=e.reason,
                    progress_file=str(self.store.path),
                )
                raise

            summary.steps.append(self._summarize(info, result))

        state.mark_completed()
        self.store.save(state)

        summary.end_time = datetime.now(UTC)
        logger.info("migration_completed", **summary.to_dict())
        return summary

    @staticmethod
    def _summarize(info: StepInfo, result: StepResult | None) -> StepSummary:
        if result is None:
            return StepSummary(info.step_id, info.title, already_completed=True)
        return StepSummary(
            info.step_id,
            info.title,
            imported=result.imported_count,
            failed=result.failed_count,
            skipped=result.skipped_count,
        )
