"""Step Runner: idempotent execution of one migration step.

A step is skipped when its id is already in ``completed_steps``. Otherwise
the runner marks it as in flight, invokes the body and either records the
produced result or records the failure and stops the run. Step bodies never
touch the migration state themselves.
"""

from collections.abc import Awaitable, Callable

from feather_migration.client.exceptions import (
    MigrationCancelledError,
    PreconditionError,
    StepFailedError,
)
from feather_migration.migration.results import Aborted, Completed, StepOutcome, StepResult
from feather_migration.migration.state import MigrationState, ProgressStore
from feather_migration.utils.logging import get_logger, log_error

logger = get_logger(__name__)

StepBody = Callable[[], Awaitable[StepOutcome | StepResult]]


class StepReporter:
    """Receives step lifecycle notifications (console output lives in the CLI)."""

    def step_skipped(self, step_id: str, title: str) -> None:
        pass

    def step_started(self, step_id: str, title: str) -> None:
        pass

    def step_completed(self, step_id: str, title: str, result: StepResult) -> None:
        pass

    def step_failed(self, step_id: str, title: str, reason: str) -> None:
        pass


class StepRunner:
    """Run steps against one migration state and persist after each boundary."""

    def __init__(
        self,
        state: MigrationState,
        store: ProgressStore,
        reporter: StepReporter | None = None,
    ):
        """Initialize the runner.

        Args:
            state: Migration state owned by the current run
            store: Progress store the state is flushed to
            reporter: Optional receiver of lifecycle notifications
        """
        self.state = state
        self.store = store
        self.reporter = reporter or StepReporter()

    async def run(self, step_id: str, title: str, body: StepBody) -> StepResult | None:
        """Run one step unless it has already completed.

        Args:
            step_id: Stable step identifier (e.g. ``import_locations``)
            title: Human readable title (e.g. ``Step 2: Importing Locations``)
            body: Coroutine function producing the step outcome

        Returns:
            The step result, or None if the step was skipped

        Raises:
            StepFailedError: If the body aborted or raised; the failure has
                already been persisted when this is raised
        """
        if self.state.is_step_completed(step_id):
            logger.info("step_already_completed", step_id=step_id)
            self.reporter.step_skipped(step_id, title)
            return None

        self.state.current_step = title
        self.store.save(self.state)

        logger.info("step_started", step_id=step_id, title=title)
        self.reporter.step_started(step_id, title)

        try:
            outcome = await body()
        except MigrationCancelledError:
            # The Run Controller records the cancellation
            raise
        except PreconditionError as e:
            self._fail(step_id, title, str(e))
            raise StepFailedError(step_id, title, str(e)) from e
        except Exception as e:
            log_error(logger, e, context=step_id, title=title)
            self._fail(step_id, title, str(e))
            raise StepFailedError(step_id, title, str(e)) from e

        if isinstance(outcome, StepResult):
            outcome = Completed(outcome)

        if isinstance(outcome, Aborted):
            self._fail(step_id, title, outcome.reason)
            raise StepFailedError(step_id, title, outcome.reason)

        result = outcome.result
        self.state.mark_step_completed(step_id, result.to_details())
        self.store.save(self.state)

        logger.info(
            "step_completed",
            step_id=step_id,
            imported=result.imported_count,
            failed=result.failed_count,
            skipped=result.skipped_count,
        )
        self.reporter.step_completed(step_id, title, result)
        return result

    def _fail(self, step_id: str, title: str, reason: str) -> None:
        self.state.mark_failed(f"{title} - Failed", reason)
        self.store.save(self.state)
        logger.error("step_failed", step_id=step_id, reason=reason)
        self.reporter.step_failed(step_id, title, reason)
