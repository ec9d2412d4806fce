"""Read-only access to the Pterodactyl panel tables.

Every ``list_*`` method returns the complete table ordered by primary key
(tasks by schedule and sequence) as frozen dataclasses. Soft-deleted SSH
keys and backups are left out.
"""

from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from feather_migration.client.exceptions import SourceError
from feather_migration.source.models import (
    Allocation,
    Backup,
    DatabaseHost,
    Egg,
    EggVariable,
    Location,
    Nest,
    Node,
    Schedule,
    Server,
    ServerDatabase,
    ServerVariable,
    SshKey,
    Subuser,
    Task,
    User,
    from_row,
)
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

LOCATIONS_SQL = (
    "SELECT `id`, `short`, `long`, `created_at`, `updated_at` "
    "FROM `locations` ORDER BY `id`"
)

NESTS_SQL = (
    "SELECT `id`, `uuid`, `author`, `name`, `description`, `created_at`, `updated_at` "
    "FROM `nests` ORDER BY `id`"
)

EGGS_SQL = (
    "SELECT `id`, `uuid`, `nest_id`, `author`, `name`, `description`, `features`, "
    "`docker_images`, `file_denylist`, `update_url`, `config_files`, `config_startup`, "
    "`config_logs`, `config_stop`, `config_from`, `startup`, `script_container`, "
    "`copy_script_from`, `script_entry`, `script_is_privileged`, `script_install`, "
    "`created_at`, `updated_at`, `force_outgoing_ip` FROM `eggs` ORDER BY `id`"
)

EGG_VARIABLES_SQL = (
    "SELECT `id`, `egg_id`, `name`, `description`, `env_variable`, `default_value`, "
    "`user_viewable`, `user_editable`, `rules`, `created_at`, `updated_at` "
    "FROM `egg_variables` ORDER BY `egg_id`, `id`"
)

NODES_SQL = (
    "SELECT `id`, `uuid`, `public`, `name`, `description`, `location_id`, `fqdn`, `scheme`, "
    "`behind_proxy`, `maintenance_mode`, `memory`, `memory_overallocate`, `disk`, "
    "`disk_overallocate`, `upload_size`, `daemon_token_id`, `daemon_token`, "
    "`daemonListen` AS `daemon_listen`, `daemonSFTP` AS `daemon_sftp`, "
    "`daemonBase` AS `daemon_base`, `created_at`, `updated_at` FROM `nodes` ORDER BY `id`"
)

DATABASE_HOSTS_SQL = (
    "SELECT `id`, `name`, `host`, `port`, `username`, `password`, `max_databases`, `node_id`, "
    "`created_at`, `updated_at` FROM `database_hosts` ORDER BY `id`"
)

ALLOCATIONS_SQL = (
    "SELECT `id`, `node_id`, `ip`, `ip_alias`, `port`, `server_id`, `notes`, "
    "`created_at`, `updated_at` FROM `allocations` ORDER BY `id`"
)

USERS_SQL = (
    "SELECT `id`, `uuid`, `username`, `email`, `name_first`, `name_last`, `password`, "
    "`remember_token`, `external_id`, `root_admin`, `use_totp`, `totp_secret`, `language`, "
    "`created_at`, `updated_at` FROM `users` ORDER BY `id`"
)

SSH_KEYS_SQL = (
    "SELECT `id`, `user_id`, `name`, `fingerprint`, `public_key`, `created_at`, `updated_at` "
    "FROM `user_ssh_keys` WHERE `deleted_at` IS NULL ORDER BY `id`"
)

SERVERS_SQL = (
    "SELECT `id`, `uuid`, `uuidShort` AS `uuid_short`, `node_id`, `name`, `description`, "
    "`status`, `skip_scripts`, `owner_id`, `memory`, `swap`, `disk`, `io`, `cpu`, `threads`, "
    "`oom_disabled`, `allocation_id`, `nest_id`, `egg_id`, `startup`, `image`, "
    "`allocation_limit`, `database_limit`, `backup_limit`, `parent_id`, `external_id`, "
    "`installed_at`, `created_at`, `updated_at` FROM `servers` ORDER BY `id`"
)

SERVER_VARIABLES_SQL = (
    "SELECT `id`, `server_id`, `variable_id`, `variable_value`, `created_at`, `updated_at` "
    "FROM `server_variables` WHERE `server_id` = :server_id ORDER BY `id`"
)

SERVER_DATABASES_SQL = (
    "SELECT `id`, `server_id`, `database_host_id`, `database`, `username`, `remote`, "
    "`password`, `max_connections`, `created_at`, `updated_at` FROM `databases` ORDER BY `id`"
)

BACKUPS_SQL = (
    "SELECT `id`, `server_id`, `uuid`, `upload_id`, `is_successful`, `is_locked`, `name`, "
    "`ignored_files`, `disk`, `checksum`, `bytes`, `completed_at`, `created_at`, `updated_at` "
    "FROM `backups` WHERE `deleted_at` IS NULL ORDER BY `id`"
)

SUBUSERS_SQL = (
    "SELECT `id`, `user_id`, `server_id`, `permissions`, `created_at`, `updated_at` "
    "FROM `subusers` ORDER BY `id`"
)

SCHEDULES_SQL = (
    "SELECT `id`, `server_id`, `name`, `cron_day_of_week`, `cron_month`, `cron_day_of_month`, "
    "`cron_hour`, `cron_minute`, `is_active`, `is_processing`, `only_when_online`, "
    "`last_run_at`, `next_run_at`, `created_at`, `updated_at` FROM `schedules` ORDER BY `id`"
)

TASKS_SQL = (
    "SELECT `id`, `schedule_id`, `sequence_id`, `action`, `payload`, `time_offset`, "
    "`is_queued`, `continue_on_failure`, `created_at`, `updated_at` "
    "FROM `tasks` ORDER BY `schedule_id`, `sequence_id`"
)

SETTING_SQL = "SELECT `value` FROM `settings` WHERE `key` = :key LIMIT 1"


class PterodactylReader:
    """Reads the entity tables of a Pterodactyl panel database."""

    def __init__(self, engine: Engine):
        """Initialize the reader.

        Args:
            engine: Engine connected to the panel database
        """
        self.engine = engine

    def _fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql), params or {})
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            logger.error("source_query_failed", error=str(e), sql=sql.split(" FROM ")[-1][:60])
            raise SourceError(f"Failed to read from the Pterodactyl database: {e}") from e

    def list_locations(self) -> list[Location]:
        return [from_row(Location, row) for row in self._fetch(LOCATIONS_SQL)]

    def list_nests(self) -> list[Nest]:
        return [from_row(Nest, row) for row in self._fetch(NESTS_SQL)]

    def list_eggs(self) -> list[Egg]:
        """List eggs with their variables attached."""
        variables: dict[int, list[EggVariable]] = {}
        for row in self._fetch(EGG_VARIABLES_SQL):
            variable = from_row(EggVariable, row)
            variables.setdefault(variable.egg_id, []).append(variable)

        return [
            from_row(Egg, row, variables=tuple(variables.get(row["id"], ())))
            for row in self._fetch(EGGS_SQL)
        ]

    def list_nodes(self) -> list[Node]:
        return [from_row(Node, row) for row in self._fetch(NODES_SQL)]

    def list_database_hosts(self) -> list[DatabaseHost]:
        return [from_row(DatabaseHost, row) for row in self._fetch(DATABASE_HOSTS_SQL)]

    def list_allocations(self) -> list[Allocation]:
        return [from_row(Allocation, row) for row in self._fetch(ALLOCATIONS_SQL)]

    def list_users(self) -> list[User]:
        return [from_row(User, row) for row in self._fetch(USERS_SQL)]

    def list_ssh_keys(self) -> list[SshKey]:
        return [from_row(SshKey, row) for row in self._fetch(SSH_KEYS_SQL)]

    def list_servers(self) -> list[Server]:
        return [from_row(Server, row) for row in self._fetch(SERVERS_SQL)]

    def list_server_variables(self, server_id: int) -> list[ServerVariable]:
        rows = self._fetch(SERVER_VARIABLES_SQL, {"server_id": server_id})
        return [from_row(ServerVariable, row) for row in rows]

    def list_server_databases(self) -> list[ServerDatabase]:
        return [from_row(ServerDatabase, row) for row in self._fetch(SERVER_DATABASES_SQL)]

    def list_backups(self) -> list[Backup]:
        return [from_row(Backup, row) for row in self._fetch(BACKUPS_SQL)]

    def list_subusers(self) -> list[Subuser]:
        return [from_row(Subuser, row) for row in self._fetch(SUBUSERS_SQL)]

    def list_schedules(self) -> list[Schedule]:
        return [from_row(Schedule, row) for row in self._fetch(SCHEDULES_SQL)]

    def list_tasks(self) -> list[Task]:
        return [from_row(Task, row) for row in self._fetch(TASKS_SQL)]

    def list_entities(self, kind: str) -> Sequence[Any]:
        """List the rows of one entity kind.

        Args:
            kind: Entity kind (``locations``, ``nests``, ``eggs`` ...)

        Raises:
            ValueError: If the kind is unknown
        """
        readers: dict[str, Callable[[], Sequence[Any]]] = {
            "locations": self.list_locations,
            "nests": self.list_nests,
            "eggs": self.list_eggs,
            "nodes": self.list_nodes,
            "database_hosts": self.list_database_hosts,
            "allocations": self.list_allocations,
            "users": self.list_users,
            "ssh_keys": self.list_ssh_keys,
            "servers": self.list_servers,
            "server_databases": self.list_server_databases,
            "backups": self.list_backups,
            "subusers": self.list_subusers,
            "schedules": self.list_schedules,
            "tasks": self.list_tasks,
        }

        if kind not in readers:
            raise ValueError(f"Unknown entity kind: {kind}")

        entities = readers[kind]()
        logger.debug("source_entities_listed", kind=kind, count=len(entities))
        return entities

    def get_setting(self, key: str) -> str | None:
        """Return the value of a row of the panel ``settings`` table."""
        rows = self._fetch(SETTING_SQL, {"key": key})
        if not rows:
            logger.debug("source_setting_missing", key=key)
            return None
        return rows[0]["value"]
