"""
Migration module for Feather Bridge.

This module provides the progress file, id mapping decoding, the step
runner and the coordination of the fifteen import steps.
"""

# Run Controller
from feather_migration.migration.coordinator import (
    MigrationCoordinator,
    MigrationPrompts,
    MigrationSummary,
    StepSummary,
)

# Mapping Codec
from feather_migration.migration.mappings import (
    MappingView,
    decode,
    decode_from_parallel_lists,
    resolve_mapping,
)

# Typed results
from feather_migration.migration.results import (
    Aborted,
    Completed,
    Failed,
    Imported,
    Skipped,
    StepResult,
    StepTally,
)

# Step Runner
from feather_migration.migration.runner import StepReporter, StepRunner

# Progress Store
from feather_migration.migration.state import MigrationState, MigrationStatus, ProgressStore

# Step bodies
from feather_migration.migration.steps import StepContext, create_step

__all__ = [
    # Progress Store
    "MigrationState",
    "MigrationStatus",
    "ProgressStore",
    # Mapping Codec
    "MappingView",
    "decode",
    "decode_from_parallel_lists",
    "resolve_mapping",
    # Typed results
    "Imported",
    "Skipped",
    "Failed",
    "Completed",
    "Aborted",
    "StepResult",
    "StepTally",
    # Step Runner
    "StepReporter",
    "StepRunner",
    # Step bodies
    "StepContext",
    "create_step",
    # Run Controller
    "MigrationCoordinator",
    "MigrationPrompts",
    "MigrationSummary",
    "StepSummary",
]
