"""
Source module for Feather Bridge.

This module provides read-only access to a Pterodactyl installation: its
files on disk and its MySQL/MariaDB database.
"""

from feather_migration.source.database import (
    REQUIRED_TABLES,
    check_required_tables,
    create_source_engine,
    verify_connection,
)
from feather_migration.source.installation import (
    InstallationReport,
    enable_maintenance_mode,
    has_blueprint,
    is_in_maintenance,
    validate_installation,
)
from feather_migration.source.reader import PterodactylReader

__all__ = [
    # Database
    "REQUIRED_TABLES",
    "create_source_engine",
    "verify_connection",
    "check_required_tables",
    # Installation
    "InstallationReport",
    "validate_installation",
    "has_blueprint",
    "is_in_maintenance",
    "enable_maintenance_mode",
    # Reader
    "PterodactylReader",
]
