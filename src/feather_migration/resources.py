"""Central step definitions - single source of truth.

This module provides the definitive registry of the migration steps, in
execution order. Every step declares the id mappings it produces and the
ones it consumes, so the fixed order can be validated before anything is
written to the target panel.

This ensures consistency across:
- The Run Controller (execution order, dependency validation)
- Step bodies (titles, entity names)
- CLI commands (state display)
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from feather_migration.client.exceptions import ConfigurationError


@dataclass(frozen=True)
class StepInfo:
    """Metadata for a migration step."""

    step_id: str
    title: str
    order: int  # 1-based position in the run
    entity: str | None  # Legacy entity migrated by the step (None for settings)
    produces: tuple[str, ...] = ()
    requires: tuple[str, ...] = ()  # Mappings consumed by the step
    optional: tuple[str, ...] = ()  # Mappings consumed when present, with a fallback


def mapping_key(entity: str, target: str | None = None) -> str:
    """Return the persisted key of an ``<entity>_to_<target>_mapping`` table."""
    return f"{entity}_to_{target or entity}_mapping"


LOCATION_MAPPING = mapping_key("location")
NEST_MAPPING = mapping_key("nest", "realm")
EGG_MAPPING = mapping_key("egg", "spell")
VARIABLE_MAPPING = mapping_key("variable")
NODE_MAPPING = mapping_key("node")
DATABASE_HOST_MAPPING = mapping_key("database_host")
ALLOCATION_MAPPING = mapping_key("allocation")
USER_MAPPING = mapping_key("user")
SSH_KEY_MAPPING = mapping_key("ssh_key")
SERVER_MAPPING = mapping_key("server")
DATABASE_MAPPING = mapping_key("database")
BACKUP_MAPPING = mapping_key("backup")
SUBUSER_MAPPING = mapping_key("subuser")
SCHEDULE_MAPPING = mapping_key("schedule")
TASK_MAPPING = mapping_key("task")


# Complete registry of the migration steps in execution order
MIGRATION_STEPS: tuple[StepInfo, ...] = (
    StepInfo("migrate_settings", "Step 1: Migrating Panel Settings", 1, None),
    StepInfo(
        "import_locations",
        "Step 2: Importing Locations",
        2,
        "location",
        produces=(LOCATION_MAPPING,),
    ),
    StepInfo(
        "import_nests",
        "Step 3: Importing Nests (Realms)",
        3,
        "nest",
        produces=(NEST_MAPPING,),
    ),
    StepInfo(
        "import_eggs",
        "Step 4: Importing Eggs (Spells)",
        4,
        "egg",
        produces=(EGG_MAPPING, VARIABLE_MAPPING),
        requires=(NEST_MAPPING,),
    ),
    StepInfo(
        "import_nodes",
        "Step 5: Importing Nodes",
        5,
        "node",
        produces=(NODE_MAPPING,),
        requires=(LOCATION_MAPPING,),
    ),
    StepInfo(
        "import_database_hosts",
        "Step 6: Importing Database Hosts",
        6,
        "database_host",
        produces=(DATABASE_HOST_MAPPING,),
        optional=(NODE_MAPPING,),
    ),
    StepInfo(
        "import_allocations",
        "Step 7: Importing Allocations",
        7,
        "allocation",
        produces=(ALLOCATION_MAPPING,),
        requires=(NODE_MAPPING,),
    ),
    StepInfo(
        "import_users",
        "Step 8: Importing Users",
        8,
        "user",
        produces=(USER_MAPPING,),
    ),
    StepInfo(
        "import_ssh_keys",
        "Step 9: Importing SSH Keys",
        9,
        "ssh_key",
        produces=(SSH_KEY_MAPPING,),
        optional=(USER_MAPPING,),
    ),
    StepInfo(
        "import_servers",
        "Step 10: Importing Servers",
        10,
        "server",
        produces=(SERVER_MAPPING,),
        requires=(NEST_MAPPING, EGG_MAPPING, ALLOCATION_MAPPING),
        optional=(NODE_MAPPING, USER_MAPPING, VARIABLE_MAPPING),
    ),
    StepInfo(
        "server_databases",
        "Step 11: Import Server Databases",
        11,
        "database",
        produces=(DATABASE_MAPPING,),
        requires=(SERVER_MAPPING, DATABASE_HOST_MAPPING),
    ),
    StepInfo(
        "import_backups",
        "Step 12: Import Backups",
        12,
        "backup",
        produces=(BACKUP_MAPPING,),
        requires=(SERVER_MAPPING,),
    ),
    StepInfo(
        "import_subusers",
        "Step 13: Import Subusers",
        13,
        "subuser",
        produces=(SUBUSER_MAPPING,),
        requires=(USER_MAPPING, SERVER_MAPPING),
    ),
    StepInfo(
        "import_schedules",
        "Step 14: Import Schedules",
        14,
        "schedule",
        produces=(SCHEDULE_MAPPING,),
        requires=(SERVER_MAPPING,),
    ),
    StepInfo(
        "import_tasks",
        "Step 15: Import Tasks",
        15,
        "task",
        produces=(TASK_MAPPING,),
        requires=(SCHEDULE_MAPPING,),
    ),
)

STEP_REGISTRY: dict[str, StepInfo] = {step.step_id: step for step in MIGRATION_STEPS}


def validate_step_order(steps: Sequence[StepInfo] = MIGRATION_STEPS) -> None:
    """Check that every consumed mapping is produced by an earlier step.

    Args:
        steps: Steps in execution order

    Raises:
        ConfigurationError: If a step id repeats or a mapping is consumed
            before (or without) being produced
    """
    produced: set[str] = set()
    seen: set[str] = set()

    for step in steps:
        if step.step_id in seen:
            raise ConfigurationError(f"Duplicate migration step: {step.step_id}")
        seen.add(step.step_id)

        missing = [key for key in (*step.requires, *step.optional) if key not in produced]
        if missing:
            raise ConfigurationError(
                f"Step '{step.step_id}' consumes {', '.join(missing)} "
                "which no earlier step produces"
            )
        produced.update(step.produces)


def get_step(step_id: str) -> StepInfo:
    """Get metadata for a step.

    Raises:
        KeyError: If the step id is unknown
    """
    if step_id not in STEP_REGISTRY:
        raise KeyError(f"Unknown migration step: {step_id}")
    return STEP_REGISTRY[step_id]


def get_step_ids() -> list[str]:
    """Get all step ids in execution order."""
    return [step.step_id for step in MIGRATION_STEPS]


def next_pending_step(completed: Iterable[str]) -> StepInfo | None:
    """Return the first step not yet completed, or None when all are done."""
    done = set(completed)
    for step in MIGRATION_STEPS:
        if step.step_id not in done:
            return step
    return None
