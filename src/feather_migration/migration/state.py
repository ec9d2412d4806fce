"""Migration state and its on-disk progress file.

The whole migration is tracked in one JSON document. Step completion in
``completed_steps`` is the only resume signal; ``step_details`` carries the
counts, id lists and id mappings each step produced for later steps.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from feather_migration.config import DEFAULT_PROGRESS_FILE
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

ALL_STEPS_COMPLETED = "All steps completed"
CANCELLED_BY_USER = "Cancelled by user"


class MigrationStatus(str, Enum):
    """Lifecycle status of a migration run."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class MigrationState:
    """The single persisted aggregate of a migration.

    Attributes:
        pterodactyl_path: Location of the legacy installation
        current_step: Label of the step in flight (informational)
        last_completed_step: Identifier of the last completed step
        completed_steps: Completed step identifiers, in completion order
        status: Lifecycle status
        error_message: Reason of the last failure, if any
        step_details: Values produced by steps (counts, id lists, mappings)
        started_at: When the migration was first started
        last_updated: When the state was last saved
    """

    pterodactyl_path: str = ""
    current_step: str = ""
    last_completed_step: str = ""
    completed_steps: list[str] = field(default_factory=list)
    status: MigrationStatus = MigrationStatus.IN_PROGRESS
    error_message: str | None = None
    step_details: dict[str, Any] = field(default_factory=dict)
    started_at: datetime | None = None
    last_updated: datetime | None = None

    @classmethod
    def start(cls, pterodactyl_path: str = "") -> "MigrationState":
        """Create the state of a brand new migration."""
        now = _utcnow()
        return cls(
            pterodactyl_path=pterodactyl_path,
            status=MigrationStatus.IN_PROGRESS,
            started_at=now,
            last_updated=now,
        )

    def is_step_completed(self, step_id: str) -> bool:
        """Return True if the step has been completed."""
        return step_id in self.completed_steps

    def mark_step_completed(self, step_id: str, details: dict[str, Any]) -> None:
        """Record a step as completed together with the details it produced."""
        if step_id not in self.completed_steps:
            self.completed_steps.append(step_id)
        self.last_completed_step = step_id
        self.step_details.update(details)

    def mark_failed(self, current_step: str, error_message: str) -> None:
        """Record a failure of the step in flight."""
        self.status = MigrationStatus.FAILED
        self.error_message = error_message
        self.current_step = current_step

    def mark_completed(self) -> None:
        """Record the terminal completed state."""
        self.status = MigrationStatus.COMPLETED
        self.last_completed_step = ALL_STEPS_COMPLETED
        self.current_step = ALL_STEPS_COMPLETED
        self.error_message = None

    def mark_cancelled(self) -> None:
        """Record an explicit operator abort."""
        self.status = MigrationStatus.CANCELLED
        self.current_step = CANCELLED_BY_USER

    def resume(self) -> None:
        """Reopen a failed or interrupted migration."""
        self.status = MigrationStatus.IN_PROGRESS
        self.error_message = None

    @property
    def is_finished(self) -> bool:
        """Return True if this state describes a completed migration."""
        return (
            self.status == MigrationStatus.COMPLETED
            or self.last_completed_step == ALL_STEPS_COMPLETED
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the progress file layout."""
        return {
            "pterodactyl_path": self.pterodactyl_path,
            "current_step": self.current_step,
            "last_completed_step": self.last_completed_step,
            "completed_steps": list(self.completed_steps),
            "started_at": _format_timestamp(self.started_at),
            "last_updated": _format_timestamp(self.last_updated),
            "status": self.status.value,
            "error_message": self.error_message,
            "step_details": self.step_details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationState":
        """Deserialize from the progress file layout.

        Raises:
            ValueError: If the document does not describe a migration state
        """
        if not isinstance(data, dict):
            raise ValueError("Progress document must be a JSON object")

        completed = data.get("completed_steps") or []
        if not isinstance(completed, list):
            raise ValueError("completed_steps must be a list")

        details = data.get("step_details") or {}
        if not isinstance(details, dict):
            raise ValueError("step_details must be an object")

        try:
            status = MigrationStatus(data.get("status") or MigrationStatus.IN_PROGRESS.value)
        except ValueError:
            logger.warning("unknown_migration_status", status=data.get("status"))
            status = MigrationStatus.IN_PROGRESS

        # completed_steps behaves as an ordered set
        unique_steps = list(dict.fromkeys(str(step) for step in completed))

        return cls(
            pterodactyl_path=data.get("pterodactyl_path") or "",
            current_step=data.get("current_step") or "",
            last_completed_step=data.get("last_completed_step") or "",
            completed_steps=unique_steps,
            status=status,
            error_message=data.get("error_message"),
            step_details=details,
            started_at=_parse_timestamp(data.get("started_at")),
            last_updated=_parse_timestamp(data.get("last_updated")),
        )


class ProgressStore:
    """Load, save and clear the progress file.

    ``load`` never raises: a missing or unreadable file means "no previous
    run". ``save`` never raises either; a failed write is logged and the
    migration carries on without resumability.
    """

    def __init__(self, path: str | Path | None = None):
        """Initialize the store.

        Args:
            path: Progress file location (defaults to the working directory)
        """
        self._path = Path(path) if path else Path.cwd() / DEFAULT_PROGRESS_FILE

    @property
    def path(self) -> Path:
        """Location of the progress file."""
        return self._path

    def exists(self) -> bool:
        """Return True if a progress file is present."""
        return self._path.is_file()

    def load(self) -> MigrationState | None:
        """Load the saved migration state.

        Returns:
            The saved state, or None when there is none or it cannot be parsed
        """
        if not self._path.is_file():
            return None

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            state = MigrationState.from_dict(data)
        except (OSError, ValueError) as e:
            logger.warning("progress_load_failed", path=str(self._path), error=str(e))
            return None

        logger.debug(
            "progress_loaded",
            path=str(self._path),
            status=state.status.value,
            completed_steps=len(state.completed_steps),
        )
        return state

    def save(self, state: MigrationState) -> bool:
        """Persist the state, stamping ``last_updated``.

        The document is written to a temporary file first and then renamed
        over the progress file so a crash never leaves a truncated document.

        Args:
            state: State to persist

        Returns:
            True if the file was written
        """
        state.last_updated = _utcnow()
        tmp_path = self._path.with_name(self._path.name + ".tmp")

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(state.to_dict(), indent=2, default=str)
            tmp_path.write_text(payload + "\n", encoding="utf-8")
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("progress_save_failed", path=str(self._path), error=str(e))
            return False

        logger.debug(
            "progress_saved",
            path=str(self._path),
            current_step=state.current_step,
            status=state.status.value,
        )
        return True

    def clear(self) -> bool:
        """Delete the progress file.

        Returns:
            True if no progress file remains
        """
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("progress_clear_failed", path=str(self._path), error=str(e))
            return False

        logger.info("progress_cleared", path=str(self._path))
        return True
