"""
Connection management for the legacy Pterodactyl database.

The migration only ever reads from the panel database. MySQL/MariaDB is
reached through PyMySQL; SQLite URLs are accepted so fixtures can stand in
for a real panel.
"""

from sqlalchemy import Engine, create_engine, inspect, pool, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from feather_migration.client.exceptions import ConfigurationError, SourceError
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

# Tables the migration reads from
REQUIRED_TABLES = (
    "allocations",
    "backups",
    "database_hosts",
    "databases",
    "eggs",
    "egg_variables",
    "locations",
    "nests",
    "nodes",
    "servers",
    "server_variables",
    "schedules",
    "subusers",
    "tasks",
    "users",
    "user_ssh_keys",
    "settings",
)


def create_source_engine(
    database_url: str,
    echo: bool = False,
    pool_recycle: int = 3600,
) -> Engine:
    """
    Create a SQLAlchemy engine for the panel database.

    Args:
        database_url: Database connection URL (mysql+pymysql:// or sqlite://)
        echo: Whether to log SQL statements
        pool_recycle: Recycle connections after this many seconds

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If the database URL is invalid
    """
    if not database_url:
        raise ConfigurationError("Database URL cannot be empty")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise ConfigurationError(f"Invalid database URL: {e}") from e

    try:
        if url.get_backend_name() == "sqlite":
            engine = create_engine(database_url, echo=echo, poolclass=pool.StaticPool)
        else:
            # A single sequential reader never needs more than a couple of connections
            engine = create_engine(
                database_url,
                echo=echo,
                pool_size=2,
                max_overflow=2,
                pool_pre_ping=True,
                pool_recycle=pool_recycle,
            )
    except (ArgumentError, ImportError, SQLAlchemyError) as e:
        logger.error("source_engine_failed", error=str(e), backend=url.get_backend_name())
        raise ConfigurationError(f"Failed to create database engine: {e}") from e

    logger.info(
        "source_engine_created",
        backend=url.get_backend_name(),
        host=url.host,
        database=url.database,
    )
    return engine


def verify_connection(engine: Engine) -> None:
    """
    Verify that the panel database answers queries.

    Raises:
        SourceError: If the connection cannot be established
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("source_connection_failed", error=str(e))
        raise SourceError(f"Cannot connect to the Pterodactyl database: {e}") from e

    logger.info("source_connection_validated")


def check_required_tables(engine: Engine) -> tuple[list[str], list[str]]:
    """
    Compare the tables of the panel database with the ones the migration reads.

    Returns:
        Tuple of (existing, missing) required table names

    Raises:
        SourceError: If the schema cannot be inspected
    """
    try:
        available = {name.lower() for name in inspect(engine).get_table_names()}
    except SQLAlchemyError as e:
        raise SourceError(f"Cannot list tables of the Pterodactyl database: {e}") from e

    existing = [table for table in REQUIRED_TABLES if table in available]
    missing = [table for table in REQUIRED_TABLES if table not in available]

    if missing:
        logger.warning("source_tables_missing", missing=missing)
    return existing, missing
