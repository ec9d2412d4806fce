"""Checks against a Pterodactyl panel installation on disk."""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from feather_migration.client.exceptions import InstallationError
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

CRITICAL_ITEMS = (".env", "app", "artisan", "composer.json")

OPTIONAL_ITEMS = (
    "bootstrap",
    "config",
    "database",
    "public",
    "resources",
    "routes",
    "storage",
    "vendor",
)

MAINTENANCE_MARKER = Path("storage") / "framework" / "down"


@dataclass
class InstallationReport:
    """What was found in a panel directory."""

    path: Path
    found: list[str] = field(default_factory=list)
    missing_optional: list[str] = field(default_factory=list)
    has_blueprint: bool = False


def validate_installation(path: str | Path) -> InstallationReport:
    """Validate that ``path`` looks like a Pterodactyl panel.

    Args:
        path: Panel installation directory

    Returns:
        Report of the items found and the optional items missing

    Raises:
        InstallationError: If the directory or a critical item is missing
    """
    root = Path(path)
    if not root.is_dir():
        raise InstallationError(f"Pterodactyl directory not found: {root}")

    missing_critical = [item for item in CRITICAL_ITEMS if not (root / item).exists()]
    if missing_critical:
        logger.error("installation_invalid", path=str(root), missing=missing_critical)
        raise InstallationError(
            "Missing critical Pterodactyl files. "
            "Expected at least: .env, app/, artisan, and composer.json",
            missing=missing_critical,
        )

    report = InstallationReport(path=root, has_blueprint=has_blueprint(root))
    report.found = list(CRITICAL_ITEMS)
    for item in OPTIONAL_ITEMS:
        if (root / item).exists():
            report.found.append(item)
        else:
            report.missing_optional.append(item)

    logger.info(
        "installation_validated",
        path=str(root),
        found=len(report.found),
        missing_optional=report.missing_optional,
        blueprint=report.has_blueprint,
    )
    return report


def has_blueprint(path: str | Path) -> bool:
    """Return True if the Blueprint extension framework is installed."""
    return (Path(path) / ".blueprint").is_dir()


def is_in_maintenance(path: str | Path) -> bool:
    return (Path(path) / MAINTENANCE_MARKER).is_file()


def enable_maintenance_mode(path: str | Path, timeout: int = 60) -> bool:
    """Put the panel into maintenance mode with ``php artisan down``.

    Args:
        path: Panel installation directory
        timeout: Seconds to wait for artisan

    Returns:
        True if the panel is in maintenance mode afterwards
    """
    root = Path(path)
    if is_in_maintenance(root):
        logger.info("maintenance_already_enabled", path=str(root))
        return True

    if not (root / "artisan").is_file():
        logger.error("artisan_not_found", path=str(root / "artisan"))
        return False

    try:
        result = subprocess.run(
            ["php", "artisan", "down"],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        logger.error("maintenance_command_failed", error=str(e))
        return False

    if result.returncode != 0:
        logger.error(
            "maintenance_command_failed",
            exit_code=result.returncode,
            stderr=result.stderr.strip()[:500],
        )
        return False

    if not is_in_maintenance(root):
        logger.warning("maintenance_marker_missing", path=str(root))
        return False

    logger.info("maintenance_enabled", path=str(root))
    return True
