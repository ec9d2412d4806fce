"""Typed outcomes of migration steps.

Step bodies report every source row as an item outcome and finish with a
step outcome. The Step Runner only persists ``Completed`` results; an
``Aborted`` outcome fails the run without marking the step complete.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Imported:
    """A source row that now exists on the target."""

    source_id: int
    target_id: int | None

    @property
    def id_changed(self) -> bool:
        return self.target_id is not None and self.target_id != self.source_id


@dataclass(frozen=True)
class Skipped:
    """A source row left out on purpose (e.g. the reserved admin user)."""

    source_id: int
    reason: str


@dataclass(frozen=True)
class Failed:
    """A source row the target did not accept, or whose references are unmapped."""

    source_id: int
    reason: str


ItemOutcome = Imported | Skipped | Failed


@dataclass
class StepResult:
    """Facts a step contributes to the progress file.

    Attributes:
        counts: Named counters (``<entity>s_count``, ``imported_count`` ...)
        id_lists: Named id lists (``imported_<target>_ids``, ``source_<entity>_ids``)
        mappings: Named source id to target id tables (``<a>_to_<b>_mapping``)
        extra: Any other JSON-serializable value
    """

    counts: dict[str, int] = field(default_factory=dict)
    id_lists: dict[str, list[int]] = field(default_factory=dict)
    mappings: dict[str, dict[int, int]] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def imported_count(self) -> int:
        return self.counts.get("imported_count", 0)

    @property
    def failed_count(self) -> int:
        return self.counts.get("failed_count", 0)

    @property
    def skipped_count(self) -> int:
        return self.counts.get("skipped_count", 0)

    def to_details(self) -> dict[str, Any]:
        """Render the flat ``step_details`` entries of this result.

        Mapping keys are stringified because JSON object keys are strings.
        """
        details: dict[str, Any] = {}
        details.update(self.extra)
        details.update(self.counts)
        for key, ids in self.id_lists.items():
            details[key] = list(ids)
        for key, mapping in self.mappings.items():
            details[key] = {str(source): target for source, target in mapping.items()}
        return details


@dataclass(frozen=True)
class Completed:
    """The step ran to the end; its result becomes part of the progress file."""

    result: StepResult


@dataclass(frozen=True)
class Aborted:
    """The step could not run (e.g. a required mapping is missing)."""

    reason: str


StepOutcome = Completed | Aborted


class StepTally:
    """Accumulate item outcomes into a step result.

    Source ids are only recorded for imported items, so the imported and
    source id lists always line up position by position.
    """

    def __init__(self, entity: str, target: str | None = None, plural: str | None = None):
        """Initialize the tally.

        Args:
            entity: Singular legacy entity name (``location``, ``nest`` ...)
            target: Singular target entity name when it differs (``realm`` ...)
            plural: Plural used for the total counter when not ``<entity>s``
        """
        self.entity = entity
        self.target = target or entity
        self.plural = plural or f"{entity}s"
        self.total = 0
        self.imported = 0
        self.failed = 0
        self.skipped = 0
        self.imported_ids: list[int] = []
        self.source_ids: list[int] = []
        self.mapping: dict[int, int] = {}
        self.outcomes: list[ItemOutcome] = []

    def record(self, outcome: ItemOutcome) -> ItemOutcome:
        """Count one item outcome."""
        self.outcomes.append(outcome)
        if isinstance(outcome, Imported):
            self.imported += 1
            if outcome.target_id is not None:
                self.imported_ids.append(outcome.target_id)
                self.source_ids.append(outcome.source_id)
                self.mapping[outcome.source_id] = outcome.target_id
        elif isinstance(outcome, Skipped):
            self.skipped += 1
        else:
            self.failed += 1
        return outcome

    @property
    def mapping_key(self) -> str:
        return f"{self.entity}_to_{self.target}_mapping"

    @property
    def imported_ids_key(self) -> str:
        return f"imported_{self.target}_ids"

    @property
    def source_ids_key(self) -> str:
        return f"source_{self.entity}_ids"

    def to_result(self, **extra: Any) -> StepResult:
        """Build the step result of everything recorded so far."""
        counts = {
            f"{self.plural}_count": self.total,
            "imported_count": self.imported,
            "failed_count": self.failed,
            "skipped_count": self.skipped,
        }
        return StepResult(
            counts=counts,
            id_lists={
                self.imported_ids_key: list(self.imported_ids),
                self.source_ids_key: list(self.source_ids),
            },
            mappings={self.mapping_key: dict(self.mapping)},
            extra=dict(extra),
        )
