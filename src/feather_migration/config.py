"""Configuration management for Feather Bridge using Pydantic.

This module provides type-safe configuration models for the FeatherPanel
target, the legacy Pterodactyl source, progress tracking and logging, plus
a model of the legacy installation's own ``.env`` file.
"""

import os
from pathlib import Path
from urllib.parse import quote_plus

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from feather_migration.client.exceptions import ConfigurationError

DEFAULT_PTERODACTYL_PATH = "/var/www/pterodactyl"
DEFAULT_PROGRESS_FILE = ".migration-progress.json"


class TargetConfig(BaseModel):
    """Configuration for the FeatherPanel instance receiving the data."""

    url: str = Field(..., description="FeatherPanel base URL")
    api_key: str = Field(..., description="Admin API key (needs admin.root)")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: int = Field(default=30, ge=1, le=1200, description="API request timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate API key is not empty."""
        if not v or v.strip() == "":
            raise ValueError("API key cannot be empty")
        return v.strip()


class SourceConfig(BaseModel):
    """Configuration for the legacy Pterodactyl installation."""

    pterodactyl_path: str | None = Field(
        default=None, description="Path to the Pterodactyl installation"
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL overriding the DB_* values of the panel .env",
    )


class ProgressConfig(BaseModel):
    """Progress file configuration."""

    file: str = Field(default=DEFAULT_PROGRESS_FILE, description="Path to the progress file")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="WARNING",
        description="Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    file_level: str = Field(
        default="DEBUG",
        description="File log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    format: str = Field(default="json", description="Log format (json or console)")
    file: str | None = Field(default="logs/migration.log", description="Log file path")

    log_payloads: bool = Field(
        default=False,
        description=(
            "Enable request/response payload logging at DEBUG level. "
            "Secrets are redacted before logging."
        ),
    )
    max_payload_size: int = Field(
        default=10000,
        ge=100,
        le=1000000,
        description="Maximum payload size (characters) to log. Larger payloads will be truncated.",
    )

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class MigrationOptions(BaseModel):
    """Interactive behaviour of a migration run."""

    countdown_seconds: int = Field(
        default=3, ge=0, le=60, description="Delay before each step starts writing data"
    )
    skip_confirmations: bool = Field(default=False, description="Answer yes to every prompt")
    skip_blueprint_confirmation: bool = Field(
        default=False, description="Continue without asking when Blueprint is detected"
    )
    enable_maintenance_mode: bool = Field(
        default=True, description="Put the legacy panel into maintenance mode before migrating"
    )


class MigrationConfig(BaseSettings):
    """Root configuration.

    Values come from a YAML file and/or environment variables such as
    ``FEATHER_BRIDGE_TARGET__URL``.
    """

    model_config = SettingsConfigDict(
        env_prefix="FEATHER_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    target: TargetConfig = Field(..., description="FeatherPanel configuration")
    source: SourceConfig = Field(default_factory=SourceConfig, description="Source configuration")
    progress: ProgressConfig = Field(
        default_factory=ProgressConfig, description="Progress file configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    options: MigrationOptions = Field(
        default_factory=MigrationOptions, description="Run options"
    )


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    return MigrationConfig(**config_data)


def load_config(config_path: str | Path | None = None) -> MigrationConfig:
    """Load configuration from a YAML file or, without one, from the environment.

    Raises:
        ConfigurationError: If the configuration is incomplete or invalid
    """
    try:
        if config_path is not None:
            return load_config_from_yaml(config_path)
        return MigrationConfig()
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(str(e)) from e


def _expand_env_vars(data: dict) -> dict:
    """Recursively expand environment variables in config dict.

    Supports ${VAR_NAME} syntax for environment variable substitution.

    Args:
        data: Configuration dictionary

    Returns:
        dict: Dictionary with expanded environment variables
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data


def save_config_to_yaml(config: MigrationConfig, output_path: str | Path) -> None:
    """Save configuration to YAML file, leaving the API key out.

    Args:
        config: Configuration to save
        output_path: Path to output YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump()
    config_dict["target"]["api_key"] = "${FEATHER_BRIDGE_API_KEY}"

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)


class PterodactylEnv(BaseModel):
    """Values read from the legacy panel's ``.env`` file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    app_key: str | None = Field(default=None, alias="APP_KEY")
    app_timezone: str = Field(default="UTC", alias="APP_TIMEZONE")
    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    app_service_author: str | None = Field(default=None, alias="APP_SERVICE_AUTHOR")
    telemetry_enabled: bool = Field(default=False, alias="PTERODACTYL_TELEMETRY_ENABLED")

    db_connection: str = Field(default="mysql", alias="DB_CONNECTION")
    db_host: str = Field(default="127.0.0.1", alias="DB_HOST")
    db_port: int = Field(default=3306, alias="DB_PORT")
    db_database: str = Field(default="panel", alias="DB_DATABASE")
    db_username: str = Field(default="pterodactyl", alias="DB_USERNAME")
    db_password: str = Field(default="", alias="DB_PASSWORD")

    hashids_salt: str | None = Field(default=None, alias="HASHIDS_SALT")
    hashids_length: int = Field(default=8, alias="HASHIDS_LENGTH")

    mail_mailer: str | None = Field(default=None, alias="MAIL_MAILER")
    mail_host: str | None = Field(default=None, alias="MAIL_HOST")
    mail_port: int | None = Field(default=None, alias="MAIL_PORT")
    mail_username: str | None = Field(default=None, alias="MAIL_USERNAME")
    mail_password: str | None = Field(default=None, alias="MAIL_PASSWORD")
    mail_encryption: str | None = Field(default=None, alias="MAIL_ENCRYPTION")
    mail_from_address: str | None = Field(default=None, alias="MAIL_FROM_ADDRESS")
    mail_from_name: str | None = Field(default=None, alias="MAIL_FROM_NAME")

    @field_validator("app_debug", "telemetry_enabled", mode="before")
    @classmethod
    def parse_flag(cls, v: object) -> bool:
        """Accept the loose boolean spellings Laravel .env files use."""
        if isinstance(v, bool):
            return v
        if v is None:
            return False
        return str(v).strip().lower() in ("true", "1", "yes", "on")

    @field_validator(
        "app_key",
        "mail_host",
        "mail_username",
        "mail_password",
        "mail_encryption",
        "mail_mailer",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        """Normalize empty and literal null values."""
        if v is None:
            return None
        if isinstance(v, str) and v.strip().lower() in ("", "null"):
            return None
        return v

    @property
    def smtp_enabled(self) -> bool:
        """SMTP is only carried over when a real mail host is configured."""
        return bool(self.mail_host) and self.mail_host != "smtp.example.com"

    def database_url(self) -> str:
        """Build the SQLAlchemy URL of the legacy panel database.

        Raises:
            ConfigurationError: If the panel does not use MySQL/MariaDB
        """
        if self.db_connection.lower() not in ("mysql", "mariadb"):
            raise ConfigurationError(
                f"Unsupported database connection '{self.db_connection}'. "
                "Only MySQL/MariaDB panels can be migrated."
            )
        return (
            f"mysql+pymysql://{quote_plus(self.db_username)}:{quote_plus(self.db_password)}"
            f"@{self.db_host}:{self.db_port}/{self.db_database}?charset=utf8mb4"
        )


def load_pterodactyl_env(pterodactyl_path: str | Path) -> PterodactylEnv:
    """Parse the ``.env`` file of a Pterodactyl installation.

    Args:
        pterodactyl_path: Installation directory

    Returns:
        PterodactylEnv: Parsed values

    Raises:
        ConfigurationError: If the file is missing or holds invalid values
    """
    env_path = Path(pterodactyl_path) / ".env"
    if not env_path.is_file():
        raise ConfigurationError(f"Pterodactyl .env file not found: {env_path}")

    # Empty values fall back to the model defaults
    values = {k: v for k, v in dotenv_values(env_path).items() if v not in (None, "")}
    try:
        return PterodactylEnv.model_validate(values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid Pterodactyl .env file {env_path}: {e}") from e
