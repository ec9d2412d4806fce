"""Step bodies for importing Pterodactyl data into FeatherPanel.

This module provides a base step class and entity-specific steps. Each
step reads one legacy table, translates foreign keys through the id
mappings of earlier steps, preserves the source id in the payload, and
reports every row as an ``Imported``, ``Skipped`` or ``Failed`` outcome.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from feather_migration.client.exceptions import PreconditionError
from feather_migration.client.target_client import ImportResult
from feather_migration.config import PterodactylEnv
from feather_migration.migration.mappings import MappingView, resolve_mapping
from feather_migration.migration.results import (
    Aborted,
    Completed,
    Failed,
    Imported,
    ItemOutcome,
    Skipped,
    StepOutcome,
    StepResult,
    StepTally,
)
from feather_migration.resources import StepInfo, get_step, mapping_key
from feather_migration.source.models import (
    Allocation,
    Backup,
    DatabaseHost,
    Egg,
    Location,
    Nest,
    Node,
    Schedule,
    Server,
    ServerDatabase,
    SshKey,
    Subuser,
    Task,
    User,
    format_timestamp,
)
from feather_migration.utils.crypto import LaravelDecryptor
from feather_migration.utils.logging import get_logger, log_step_summary

logger = get_logger(__name__)


def _as_count(value: Any) -> int:
    """Read a counter from a response, treating anything unusable as 0."""
    if isinstance(value, bool):
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


# FeatherPanel keeps user id 1 for the account created during installation
RESERVED_USER_ID = 1

APP_NAME_SETTING = "settings::app:name"
TWO_FA_SETTING = "settings::pterodactyl:auth:2fa_required"


class SourceReader(Protocol):
    def list_entities(self, kind: str) -> Sequence[Any]: ...

    def list_eggs(self) -> Sequence[Egg]: ...

    def list_server_variables(self, server_id: int) -> Sequence[Any]: ...

    def get_setting(self, key: str) -> str | None: ...


class TargetWriter(Protocol):
    async def import_entity(self, kind: str, payload: dict[str, Any]) -> ImportResult: ...

    async def update_settings(self, settings: dict[str, str]) -> ImportResult: ...


BeforeImport = Callable[[StepInfo, int], Awaitable[None]]


@dataclass
class StepContext:
    """Everything a step body may use.

    Attributes:
        reader: Legacy database reader
        writer: FeatherPanel importer client
        step_details: Read-only view of the values earlier steps produced
        env: Values of the legacy ``.env`` file
        decryptor: Decryptor built from ``APP_KEY`` (None when it is missing)
        before_import: Awaited once before the first write of a step
    """

    reader: SourceReader
    writer: TargetWriter
    step_details: Mapping[str, Any]
    env: PterodactylEnv | None = None
    decryptor: LaravelDecryptor | None = None
    before_import: BeforeImport | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.step_details, MappingProxyType):
            self.step_details = MappingProxyType(dict(self.step_details))


def _flag(value: bool) -> int:
    return 1 if value else 0


def _text_flag(value: bool) -> str:
    return "true" if value else "false"


class MigrationStep:
    """Base class of a step body."""

    STEP_ID = ""

    def __init__(self, context: StepContext):
        self.context = context
        self.info = get_step(self.STEP_ID)

    async def run(self) -> StepOutcome:
        raise NotImplementedError

    async def _before_import(self, count: int) -> None:
        if self.context.before_import is not None:
            await self.context.before_import(self.info, count)


class SettingsStep(MigrationStep):
    """Carry the panel name, security and SMTP settings over."""

    STEP_ID = "migrate_settings"

    def build_settings(self) -> dict[str, str]:
        """Build the settings payload from the legacy ``.env`` and settings table."""
        env = self.context.env or PterodactylEnv()
        reader = self.context.reader

        settings: dict[str, str | None] = {
            "app_name": reader.get_setting(APP_NAME_SETTING),
            "telemetry": _text_flag(env.telemetry_enabled),
            "require_two_fa_admins": _text_flag(reader.get_setting(TWO_FA_SETTING) == "1"),
            "app_developer_mode": _text_flag(env.app_debug),
            "app_timezone": env.app_timezone,
            "smtp_enabled": _text_flag(env.smtp_enabled),
        }

        if env.smtp_enabled:
            settings.update(
                {
                    "smtp_host": env.mail_host,
                    "smtp_port": str(env.mail_port) if env.mail_port else None,
                    "smtp_user": env.mail_username,
                    "smtp_pass": env.mail_password,
                    "smtp_encryption": env.mail_encryption,
                    "smtp_from": env.mail_from_address,
                }
            )

        return {key: value for key, value in settings.items() if value is not None}

    async def run(self) -> StepOutcome:
        settings = self.build_settings()
        logger.info(
            "settings_prepared",
            keys=sorted(settings),
            smtp_enabled=settings["smtp_enabled"],
        )

        await self._before_import(len(settings))

        response = await self.context.writer.update_settings(settings)
        if not response.success:
            return Aborted(f"Settings update failed: {response.error_message or 'Unknown error'}")

        names = response.data.get("updated_settings")
        updated = [str(name) for name in names] if isinstance(names, list) else []
        logger.info("settings_updated", updated=len(updated))
        return Completed(
            StepResult(
                counts={"updated_settings_count": len(updated)},
                extra={"updated_settings": updated},
            )
        )


class EntityStep(MigrationStep):
    """Import every row of one legacy table.

    Subclasses set the table and entity names and build the payload of a
    single row. Required mappings are resolved in ``prepare`` before the
    table is read; when one is missing the step aborts, even for an empty
    table.
    """

    SOURCE_KIND = ""  # Reader kind (``locations``, ``eggs`` ...)
    TARGET_KIND = ""  # Import endpoint kind (``location``, ``spell`` ...)
    ENTITY = ""  # Legacy entity name used in persisted keys
    TARGET: str | None = None  # Target entity name when it differs
    PLURAL: str | None = None  # Plural of the total counter when not ``<entity>s``
    NEEDS_APP_KEY = False

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.tally = StepTally(self.ENTITY, self.TARGET, self.PLURAL)

    def mapping(self, entity: str, target: str | None = None) -> MappingView:
        """Resolve the id mapping another step produced."""
        target = target or entity
        return resolve_mapping(
            self.context.step_details,
            mapping_key(entity, target),
            f"imported_{target}_ids",
            f"source_{entity}_ids",
        )

    def required_mapping(self, entity: str, target: str | None = None) -> MappingView:
        view = self.mapping(entity, target)
        if not view:
            raise PreconditionError(
                f"{entity.replace('_', ' ').capitalize()} mapping not found. "
                f"Please import {(target or entity).replace('_', ' ')}s first."
            )
        return view

    @property
    def decryptor(self) -> LaravelDecryptor:
        if self.context.decryptor is None:
            raise PreconditionError(
                "APP_KEY not found in the Pterodactyl .env file; "
                "it is required to decrypt stored secrets"
            )
        return self.context.decryptor

    def read_entities(self) -> Sequence[Any]:
        return self.context.reader.list_entities(self.SOURCE_KIND)

    def prepare(self) -> None:
        """Resolve the mappings the step needs (override in subclasses)."""
        if self.NEEDS_APP_KEY:
            _ = self.decryptor

    def build_payload(self, entity: Any) -> dict[str, Any] | Skipped | Failed:
        raise NotImplementedError

    def after_import(self, entity: Any, result: ImportResult) -> None:
        """Hook called for every successful import."""

    def result_extra(self) -> dict[str, Any]:
        """Additional values stored with the step result."""
        return {}

    def describe(self, entity: Any) -> str:
        return getattr(entity, "name", None) or str(entity.id)

    async def run(self) -> StepOutcome:
        try:
            self.prepare()
        except PreconditionError as e:
            logger.error("step_precondition_failed", step_id=self.STEP_ID, reason=str(e))
            return Aborted(str(e))

        entities = self.read_entities()
        self.tally.total = len(entities)

        if not entities:
            logger.info("step_source_empty", step_id=self.STEP_ID, kind=self.SOURCE_KIND)
            return Completed(self.tally.to_result(**self.result_extra()))

        logger.info("step_importing", step_id=self.STEP_ID, count=len(entities))
        await self._before_import(len(entities))

        for entity in entities:
            outcome = await self.import_one(entity)
            self.tally.record(outcome)

        log_step_summary(
            logger,
            self.STEP_ID,
            imported=self.tally.imported,
            failed=self.tally.failed,
            skipped=self.tally.skipped,
        )
        return Completed(self.tally.to_result(**self.result_extra()))

    async def import_one(self, entity: Any) -> ItemOutcome:
        """Import a single row, containing every failure to that row."""
        try:
            payload = self.build_payload(entity)
            if isinstance(payload, (Skipped, Failed)):
                logger.warning(
                    "item_not_imported",
                    step_id=self.STEP_ID,
                    source_id=entity.id,
                    name=self.describe(entity),
                    outcome=type(payload).__name__.lower(),
                    reason=payload.reason,
                )
                return payload

            result = await self.context.writer.import_entity(self.TARGET_KIND, payload)
        except Exception as e:
            logger.error(
                "item_import_failed",
                step_id=self.STEP_ID,
                source_id=entity.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Failed(entity.id, str(e))

        if not result.success:
            reason = result.error_message or "Import rejected by FeatherPanel"
            logger.warning(
                "item_import_rejected",
                step_id=self.STEP_ID,
                source_id=entity.id,
                name=self.describe(entity),
                error=reason,
            )
            return Failed(entity.id, reason)

        outcome = Imported(entity.id, result.assigned_id)
        if outcome.id_changed:
            logger.warning(
                "item_id_changed",
                step_id=self.STEP_ID,
                source_id=entity.id,
                target_id=result.assigned_id,
            )
        else:
            logger.info(
                "item_imported",
                step_id=self.STEP_ID,
                source_id=entity.id,
                target_id=result.assigned_id,
            )

        try:
            self.after_import(entity, result)
        except Exception as e:
            # The row exists on the target, so it stays imported
            logger.warning(
                "item_post_import_failed",
                step_id=self.STEP_ID,
                source_id=entity.id,
                error=str(e),
                error_type=type(e).__name__,
            )
        return outcome


class LocationStep(EntityStep):
    STEP_ID = "import_locations"
    SOURCE_KIND = "locations"
    TARGET_KIND = "location"
    ENTITY = "location"

    def describe(self, entity: Location) -> str:
        return entity.short

    def build_payload(self, entity: Location) -> dict[str, Any]:
        return {"name": entity.short, "description": entity.long, "id": entity.id}


class NestStep(EntityStep):
    STEP_ID = "import_nests"
    SOURCE_KIND = "nests"
    TARGET_KIND = "realm"
    ENTITY = "nest"
    TARGET = "realm"

    def build_payload(self, entity: Nest) -> dict[str, Any]:
        return {"name": entity.name, "description": entity.description, "id": entity.id}


class EggStep(EntityStep):
    """Import eggs as spells together with their variables."""

    STEP_ID = "import_eggs"
    SOURCE_KIND = "eggs"
    TARGET_KIND = "spell"
    ENTITY = "egg"
    TARGET = "spell"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.realms = MappingView(mapping_key("nest", "realm"))
        self.variable_mapping: dict[int, int] = {}
        self.variables_imported = 0

    def prepare(self) -> None:
        self.realms = self.required_mapping("nest", "realm")

    def build_payload(self, entity: Egg) -> dict[str, Any] | Failed:
        realm_id = self.realms.lookup(entity.nest_id)
        if realm_id is None:
            return Failed(entity.id, f"nest_id {entity.nest_id} not found in realm mapping")

        return {
            "egg": {
                "id": entity.id,
                "uuid": entity.uuid,
                "nest_id": entity.nest_id,
                "author": entity.author,
                "name": entity.name,
                "description": entity.description,
                "features": entity.features,
                "docker_images": entity.docker_images,
                "file_denylist": entity.file_denylist,
                "update_url": entity.update_url,
                "config_files": entity.config_files,
                "config_startup": entity.config_startup,
                "config_logs": entity.config_logs,
                "config_stop": entity.config_stop,
                "startup": entity.startup,
                "script_container": entity.script_container,
                "script_entry": entity.script_entry,
                "script_is_privileged": entity.script_is_privileged,
                "script_install": entity.script_install,
                "force_outgoing_ip": entity.force_outgoing_ip,
                "config_from": entity.config_from,
                "copy_script_from": entity.copy_script_from,
            },
            "variables": [
                {
                    "id": variable.id,
                    "name": variable.name,
                    "description": variable.description,
                    "env_variable": variable.env_variable,
                    "default_value": variable.default_value,
                    "user_viewable": variable.user_viewable,
                    "user_editable": variable.user_editable,
                    "rules": variable.rules,
                }
                for variable in entity.variables
            ],
            "nest_to_realm_mapping": {str(entity.nest_id): realm_id},
        }

    def after_import(self, entity: Egg, result: ImportResult) -> None:
        # Variable ids are preserved, so the mapping is the identity
        for variable in entity.variables:
            self.variable_mapping[variable.id] = variable.id
        self.variables_imported += _as_count(result.data.get("variables_imported"))

    def result_extra(self) -> dict[str, Any]:
        return {"total_variables_imported": self.variables_imported}

    async def run(self) -> StepOutcome:
        outcome = await super().run()
        if isinstance(outcome, Completed):
            outcome.result.mappings[mapping_key("variable")] = dict(self.variable_mapping)
        return outcome


class NodeStep(EntityStep):
    STEP_ID = "import_nodes"
    SOURCE_KIND = "nodes"
    TARGET_KIND = "node"
    ENTITY = "node"
    NEEDS_APP_KEY = True

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.locations = MappingView(mapping_key("location"))

    def prepare(self) -> None:
        super().prepare()
        self.locations = self.required_mapping("location")

    def build_payload(self, entity: Node) -> dict[str, Any] | Failed:
        location_id = self.locations.lookup(entity.location_id)
        if location_id is None:
            return Failed(
                entity.id, f"location_id {entity.location_id} not found in location mapping"
            )

        return {
            "node": {
                "id": entity.id,
                "uuid": entity.uuid,
                "public": entity.public,
                "name": entity.name,
                "description": entity.description,
                "location_id": location_id,
                "fqdn": entity.fqdn,
                "scheme": entity.scheme,
                "behind_proxy": entity.behind_proxy,
                "maintenance_mode": entity.maintenance_mode,
                "memory": entity.memory,
                "memory_overallocate": entity.memory_overallocate,
                "disk": entity.disk,
                "disk_overallocate": entity.disk_overallocate,
                "upload_size": entity.upload_size,
                "daemonListen": entity.daemon_listen,
                "daemonSFTP": entity.daemon_sftp,
                "daemonBase": entity.daemon_base,
                "daemon_token_id": entity.daemon_token_id,
                "daemon_token": self.decryptor.decrypt_or_fallback(
                    entity.daemon_token, field="daemon_token"
                ),
            },
            "location_to_location_mapping": self.locations.as_request_mapping(),
            "generate_new_tokens": True,
        }


class DatabaseHostStep(EntityStep):
    STEP_ID = "import_database_hosts"
    SOURCE_KIND = "database_hosts"
    TARGET_KIND = "database_host"
    ENTITY = "database_host"
    NEEDS_APP_KEY = True

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.nodes = MappingView(mapping_key("node"))

    def prepare(self) -> None:
        super().prepare()
        self.nodes = self.mapping("node")

    def build_payload(self, entity: DatabaseHost) -> dict[str, Any]:
        node_id = self.nodes.lookup(entity.node_id)
        if entity.node_id is not None and node_id is None:
            logger.warning(
                "database_host_node_unmapped",
                source_id=entity.id,
                node_id=entity.node_id,
            )

        return {
            "id": entity.id,
            "name": entity.name,
            "node_id": node_id,
            "database_type": "mysql",
            "database_port": entity.port,
            "database_username": entity.username,
            "database_password": self.decryptor.decrypt_or_fallback(
                entity.password, field="database_host_password"
            ),
            "database_host": entity.host,
        }


class AllocationStep(EntityStep):
    STEP_ID = "import_allocations"
    SOURCE_KIND = "allocations"
    TARGET_KIND = "allocation"
    ENTITY = "allocation"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.nodes = MappingView(mapping_key("node"))

    def prepare(self) -> None:
        self.nodes = self.required_mapping("node")

    def describe(self, entity: Allocation) -> str:
        return f"{entity.ip}:{entity.port}"

    def build_payload(self, entity: Allocation) -> dict[str, Any] | Failed:
        node_id = self.nodes.lookup(entity.node_id)
        if node_id is None:
            return Failed(entity.id, f"node_id {entity.node_id} not found in node mapping")

        return {
            "allocation": {
                "id": entity.id,
                "node_id": node_id,
                "ip": entity.ip,
                "ip_alias": entity.ip_alias,
                "port": entity.port,
                "server_id": entity.server_id,
                "notes": entity.notes,
            },
            "node_to_node_mapping": self.nodes.as_request_mapping(),
            # Servers are imported later, the panel links them itself
            "server_to_server_mapping": None,
        }


class UserStep(EntityStep):
    STEP_ID = "import_users"
    SOURCE_KIND = "users"
    TARGET_KIND = "user"
    ENTITY = "user"

    def describe(self, entity: User) -> str:
        return entity.username

    def build_payload(self, entity: User) -> dict[str, Any] | Skipped:
        if entity.id == RESERVED_USER_ID:
            return Skipped(entity.id, "ID 1 is reserved for the main user")

        return {
            "user": {
                "id": entity.id,
                "uuid": entity.uuid,
                "username": entity.username,
                "email": entity.email,
                "name_first": entity.name_first,
                "name_last": entity.name_last,
                # Bcrypt hashes are accepted as-is
                "password": entity.password,
                "remember_token": entity.remember_token,
                "external_id": entity.external_id,
                "root_admin": entity.root_admin,
                "language": entity.language,
            }
        }


class SshKeyStep(EntityStep):
    STEP_ID = "import_ssh_keys"
    SOURCE_KIND = "ssh_keys"
    TARGET_KIND = "ssh_key"
    ENTITY = "ssh_key"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.users = MappingView(mapping_key("user"))

    def prepare(self) -> None:
        self.users = self.mapping("user")

    def build_payload(self, entity: SshKey) -> dict[str, Any]:
        return {
            "ssh_key": {
                "id": entity.id,
                "user_id": self.users.lookup_or_original(entity.user_id),
                "name": entity.name,
                "public_key": entity.public_key,
                "fingerprint": entity.fingerprint,
            },
            "user_to_user_mapping": self.users.as_request_mapping(),
        }


class ServerStep(EntityStep):
    """Import servers with their variables."""

    STEP_ID = "import_servers"
    SOURCE_KIND = "servers"
    TARGET_KIND = "server"
    ENTITY = "server"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.realms = MappingView(mapping_key("nest", "realm"))
        self.spells = MappingView(mapping_key("egg", "spell"))
        self.allocations = MappingView(mapping_key("allocation"))
        self.nodes = MappingView(mapping_key("node"))
        self.users = MappingView(mapping_key("user"))
        self.variables = MappingView(mapping_key("variable"))
        self.variables_imported = 0

    def prepare(self) -> None:
        self.realms = self.mapping("nest", "realm")
        self.spells = self.mapping("egg", "spell")
        self.allocations = self.mapping("allocation")
        self.nodes = self.mapping("node")
        self.users = self.mapping("user")

        self.variables = self.mapping("variable")
        if not self.variables:
            # Variable ids are preserved by the eggs step
            table = {
                variable.id: variable.id
                for egg in self.context.reader.list_eggs()
                for variable in egg.variables
            }
            self.variables = MappingView(mapping_key("variable"), table)

    def build_payload(self, entity: Server) -> dict[str, Any] | Failed:
        realm_id = self.realms.lookup(entity.nest_id)
        if realm_id is None:
            return Failed(entity.id, f"nest_id {entity.nest_id} not found in realm mapping")

        spell_id = self.spells.lookup(entity.egg_id)
        if spell_id is None:
            return Failed(entity.id, f"egg_id {entity.egg_id} not found in spell mapping")

        allocation_id = self.allocations.lookup(entity.allocation_id)
        if allocation_id is None:
            return Failed(
                entity.id,
                f"allocation_id {entity.allocation_id} not found in allocation mapping",
            )

        parent_id = entity.parent_id
        if parent_id is not None:
            # Parents imported earlier in this step are remapped, others keep their id
            parent_id = self.tally.mapping.get(parent_id, parent_id)

        server_variables = self.context.reader.list_server_variables(entity.id)

        return {
            "server": {
                "id": entity.id,
                "uuid": entity.uuid,
                "uuidShort": entity.uuid_short,
                "node_id": self.nodes.lookup_or_original(entity.node_id),
                "name": entity.name,
                "description": entity.description,
                "status": entity.status,
                "skip_scripts": entity.skip_scripts,
                "owner_id": self.users.lookup_or_original(entity.owner_id),
                "memory": entity.memory,
                "swap": entity.swap,
                "disk": entity.disk,
                "io": entity.io,
                "cpu": entity.cpu,
                "threads": entity.threads,
                "oom_disabled": entity.oom_disabled,
                "allocation_id": allocation_id,
                "nest_id": entity.nest_id,
                "egg_id": entity.egg_id,
                "spell_id": spell_id,
                "startup": entity.startup,
                "image": entity.image,
                "allocation_limit": entity.allocation_limit,
                "database_limit": entity.database_limit,
                "backup_limit": entity.backup_limit,
                "parent_id": parent_id,
                "external_id": entity.external_id,
                "installed_at": format_timestamp(entity.installed_at),
            },
            "server_variables": [
                {
                    "id": variable.id,
                    "variable_id": variable.variable_id,
                    "variable_value": variable.variable_value,
                }
                for variable in server_variables
            ],
            "nest_to_realm_mapping": self.realms.as_request_mapping(),
            "egg_to_spell_mapping": self.spells.as_request_mapping(),
            "node_to_node_mapping": self.nodes.as_request_mapping(),
            "user_to_user_mapping": self.users.as_request_mapping(),
            "allocation_to_allocation_mapping": self.allocations.as_request_mapping(),
            "variable_to_variable_mapping": self.variables.as_request_mapping(),
            "server_to_server_mapping": {
                str(source): target for source, target in self.tally.mapping.items()
            },
        }

    def after_import(self, entity: Server, result: ImportResult) -> None:
        self.variables_imported += _as_count(result.data.get("variables_imported"))

    def result_extra(self) -> dict[str, Any]:
        return {"total_variables_imported": self.variables_imported}


class ServerDatabaseStep(EntityStep):
    STEP_ID = "server_databases"
    SOURCE_KIND = "server_databases"
    TARGET_KIND = "database"
    ENTITY = "database"
    NEEDS_APP_KEY = True

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.servers = MappingView(mapping_key("server"))
        self.hosts = MappingView(mapping_key("database_host"))

    def prepare(self) -> None:
        super().prepare()
        self.servers = self.required_mapping("server")
        self.hosts = self.required_mapping("database_host")

    def describe(self, entity: ServerDatabase) -> str:
        return entity.database

    def build_payload(self, entity: ServerDatabase) -> dict[str, Any] | Failed:
        server_id = self.servers.lookup(entity.server_id)
        if server_id is None:
            return Failed(entity.id, f"server_id {entity.server_id} not found in server mapping")

        host_id = self.hosts.lookup(entity.database_host_id)
        if host_id is None:
            return Failed(
                entity.id,
                f"database_host_id {entity.database_host_id} not found in database host mapping",
            )

        return {
            "database": {
                "id": entity.id,
                "server_id": server_id,
                "database_host_id": host_id,
                "database": entity.database,
                "username": entity.username,
                "remote": entity.remote,
                "password": self.decryptor.decrypt_or_fallback(
                    entity.password, field="database_password"
                ),
                "max_connections": entity.max_connections or None,
                "created_at": format_timestamp(entity.created_at),
                "updated_at": format_timestamp(entity.updated_at),
            },
            "server_to_server_mapping": self.servers.as_request_mapping(),
            "database_host_to_database_host_mapping": self.hosts.as_request_mapping(),
        }


class BackupStep(EntityStep):
    STEP_ID = "import_backups"
    SOURCE_KIND = "backups"
    TARGET_KIND = "backup"
    ENTITY = "backup"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.servers = MappingView(mapping_key("server"))

    def prepare(self) -> None:
        self.servers = self.required_mapping("server")

    def build_payload(self, entity: Backup) -> dict[str, Any] | Failed:
        server_id = self.servers.lookup(entity.server_id)
        if server_id is None:
            return Failed(entity.id, f"server_id {entity.server_id} not found in server mapping")

        return {
            "backup": {
                "id": entity.id,
                "server_id": server_id,
                "uuid": entity.uuid,
                "upload_id": entity.upload_id,
                "is_successful": entity.is_successful,
                "is_locked": entity.is_locked,
                "name": entity.name,
                "ignored_files": entity.ignored_files,
                "disk": entity.disk,
                "checksum": entity.checksum,
                "bytes": entity.bytes,
                "completed_at": format_timestamp(entity.completed_at),
                "created_at": format_timestamp(entity.created_at),
                "updated_at": format_timestamp(entity.updated_at),
            },
            "server_to_server_mapping": self.servers.as_request_mapping(),
        }


class SubuserStep(EntityStep):
    STEP_ID = "import_subusers"
    SOURCE_KIND = "subusers"
    TARGET_KIND = "subuser"
    ENTITY = "subuser"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.users = MappingView(mapping_key("user"))
        self.servers = MappingView(mapping_key("server"))

    def prepare(self) -> None:
        self.users = self.required_mapping("user")
        self.servers = self.required_mapping("server")

    def build_payload(self, entity: Subuser) -> dict[str, Any] | Failed:
        user_id = self.users.lookup(entity.user_id)
        if user_id is None:
            return Failed(entity.id, f"user_id {entity.user_id} not found in user mapping")

        server_id = self.servers.lookup(entity.server_id)
        if server_id is None:
            return Failed(entity.id, f"server_id {entity.server_id} not found in server mapping")

        return {
            "subuser": {
                "id": entity.id,
                "user_id": user_id,
                "server_id": server_id,
                "permissions": entity.permissions,
                "created_at": format_timestamp(entity.created_at, sep=" "),
                "updated_at": format_timestamp(entity.updated_at, sep=" "),
            },
            "user_to_user_mapping": self.users.as_request_mapping(),
            "server_to_server_mapping": self.servers.as_request_mapping(),
        }


class ScheduleStep(EntityStep):
    STEP_ID = "import_schedules"
    SOURCE_KIND = "schedules"
    TARGET_KIND = "schedule"
    ENTITY = "schedule"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.servers = MappingView(mapping_key("server"))

    def prepare(self) -> None:
        self.servers = self.required_mapping("server")

    def build_payload(self, entity: Schedule) -> dict[str, Any] | Failed:
        server_id = self.servers.lookup(entity.server_id)
        if server_id is None:
            return Failed(entity.id, f"server_id {entity.server_id} not found in server mapping")

        return {
            "schedule": {
                "id": entity.id,
                "server_id": server_id,
                "name": entity.name,
                "cron_day_of_week": entity.cron_day_of_week,
                "cron_month": entity.cron_month,
                "cron_day_of_month": entity.cron_day_of_month,
                "cron_hour": entity.cron_hour,
                "cron_minute": entity.cron_minute,
                "is_active": _flag(entity.is_active),
                "is_processing": _flag(entity.is_processing),
                "only_when_online": entity.only_when_online,
                "last_run_at": format_timestamp(entity.last_run_at, sep=" "),
                "next_run_at": format_timestamp(entity.next_run_at, sep=" "),
                "created_at": format_timestamp(entity.created_at, sep=" "),
                "updated_at": format_timestamp(entity.updated_at, sep=" "),
            },
            "server_to_server_mapping": self.servers.as_request_mapping(),
        }


class TaskStep(EntityStep):
    STEP_ID = "import_tasks"
    SOURCE_KIND = "tasks"
    TARGET_KIND = "task"
    ENTITY = "task"

    def __init__(self, context: StepContext):
        super().__init__(context)
        self.schedules = MappingView(mapping_key("schedule"))

    def prepare(self) -> None:
        self.schedules = self.required_mapping("schedule")

    def describe(self, entity: Task) -> str:
        return f"{entity.action} #{entity.sequence_id}"

    def build_payload(self, entity: Task) -> dict[str, Any] | Failed:
        schedule_id = self.schedules.lookup(entity.schedule_id)
        if schedule_id is None:
            return Failed(
                entity.id, f"schedule_id {entity.schedule_id} not found in schedule mapping"
            )

        return {
            "task": {
                "id": entity.id,
                "schedule_id": schedule_id,
                "sequence_id": entity.sequence_id,
                "action": entity.action,
                "payload": entity.payload,
                "time_offset": entity.time_offset,
                "is_queued": _flag(entity.is_queued),
                "continue_on_failure": entity.continue_on_failure,
                "created_at": format_timestamp(entity.created_at, sep=" "),
                "updated_at": format_timestamp(entity.updated_at, sep=" "),
            },
            "schedule_to_schedule_mapping": self.schedules.as_request_mapping(),
        }


STEP_CLASSES: dict[str, type[MigrationStep]] = {
    step_class.STEP_ID: step_class
    for step_class in (
        SettingsStep,
        LocationStep,
        NestStep,
        EggStep,
        NodeStep,
        DatabaseHostStep,
        AllocationStep,
        UserStep,
        SshKeyStep,
        ServerStep,
        ServerDatabaseStep,
        BackupStep,
        SubuserStep,
        ScheduleStep,
        TaskStep,
    )
}


def create_step(step_id: str, context: StepContext) -> MigrationStep:
    """Create the step body for a step id.

    Args:
        step_id: Step identifier (e.g. ``import_locations``)
        context: Reader, writer and read-only step details for the body

    Returns:
        Appropriate MigrationStep subclass instance

    Raises:
        NotImplementedError: If no body exists for the step id
    """
    step_class = STEP_CLASSES.get(step_id)
    if not step_class:
        raise NotImplementedError(
            f"No step body implemented for: {step_id}. "
            f"Available steps: {', '.join(sorted(STEP_CLASSES))}"
        )
    return step_class(context)
