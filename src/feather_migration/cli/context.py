"""
CLI context manager for Feather Bridge.

This module provides the context object that is passed to all CLI commands,
containing configuration, the progress store and the FeatherPanel client.
"""

from dataclasses import dataclass, field
from pathlib import Path

from feather_migration.client.target_client import FeatherPanelClient
from feather_migration.config import MigrationConfig, load_config
from feather_migration.migration.state import ProgressStore
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file (environment only when None)
        log_level: Logging level
        log_file: Optional log file path
        config: Loaded migration configuration
        store: Progress file store
        target_client: Client for the FeatherPanel instance
    """

    config_path: Path | None = None
    log_level: str = "WARNING"
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)
    _store: ProgressStore | None = field(default=None, init=False, repr=False)
    _target_client: FeatherPanelClient | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration."""
        if self._config is None:
            logger.debug(
                "loading_configuration",
                config_path=str(self.config_path) if self.config_path else None,
            )
            self._config = load_config(self.config_path)
            logger.debug("configuration_loaded")

        return self._config

    @property
    def store(self) -> ProgressStore:
        """Get or create the progress store.

        Falls back to the default progress file when no configuration is
        available, so state commands work without one.
        """
        if self._store is None:
            path: str | None = None
            if self._config is not None or self.config_path is not None:
                path = self.config.progress.file
            self._store = ProgressStore(path)
            logger.debug("progress_store_created", path=str(self._store.path))

        return self._store

    @property
    def target_client(self) -> FeatherPanelClient:
        """Get or create the FeatherPanel client."""
        if self._target_client is None:
            logger.debug("creating_target_client", url=self.config.target.url)
            self._target_client = FeatherPanelClient(
                config=self.config.target,
                log_payloads=self.config.logging.log_payloads,
                max_payload_size=self.config.logging.max_payload_size,
            )

        return self._target_client

    async def aclose(self) -> None:
        """Close the HTTP client if one was created."""
        if self._target_client is not None:
            await self._target_client.close()
            self._target_client = None
