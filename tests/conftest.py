"""Shared fixtures: an in-memory legacy panel and an in-memory FeatherPanel."""

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from feather_migration.client.exceptions import NetworkError
from feather_migration.client.target_client import ImportResult
from feather_migration.config import MigrationOptions
from feather_migration.migration.state import ProgressStore
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
)

ENTITY_KINDS = (
    "locations",
    "nests",
    "eggs",
    "nodes",
    "database_hosts",
    "allocations",
    "users",
    "ssh_keys",
    "servers",
    "server_databases",
    "backups",
    "subusers",
    "schedules",
    "tasks",
)


def source_id_of(payload: dict[str, Any]) -> int:
    """Find the preserved source id in an import payload."""
    if "id" in payload:
        return payload["id"]
    for value in payload.values():
        if isinstance(value, dict) and "id" in value:
            return value["id"]
    raise KeyError("payload carries no id")


class FakeReader:
    """Legacy panel tables held in memory."""

    def __init__(
        self,
        entities: dict[str, Sequence[Any]] | None = None,
        server_variables: dict[int, Sequence[ServerVariable]] | None = None,
        settings: dict[str, str] | None = None,
    ):
        self.entities = {kind: list((entities or {}).get(kind, ())) for kind in ENTITY_KINDS}
        self.server_variables = dict(server_variables or {})
        self.settings = dict(settings or {})
        self.reads: list[str] = []

    def list_entities(self, kind: str) -> Sequence[Any]:
        if kind not in self.entities:
            raise ValueError(f"Unknown entity kind: {kind}")
        self.reads.append(kind)
        return list(self.entities[kind])

    def list_eggs(self) -> Sequence[Egg]:
        return list(self.entities["eggs"])

    def list_server_variables(self, server_id: int) -> Sequence[ServerVariable]:
        return list(self.server_variables.get(server_id, ()))

    def get_setting(self, key: str) -> str | None:
        return self.settings.get(key)


class FakeWriter:
    """FeatherPanel importer that preserves ids unless told otherwise.

    Attributes:
        assign: Per kind overrides of the id the panel hands out
        reject: Per kind source ids the panel refuses
        explode: Per kind source ids whose request fails in transport
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.settings_calls: list[dict[str, str]] = []
        self.assign: dict[str, dict[int, int]] = {}
        self.reject: dict[str, set[int]] = {}
        self.explode: dict[str, set[int]] = {}
        self.settings_result = ImportResult(
            success=True, data={"updated_settings": ["app_name", "telemetry"]}
        )

    async def import_entity(self, kind: str, payload: dict[str, Any]) -> ImportResult:
        self.calls.append((kind, payload))
        source_id = source_id_of(payload)

        if source_id in self.explode.get(kind, set()):
            raise NetworkError("Network error: connection reset")
        if source_id in self.reject.get(kind, set()):
            return ImportResult(success=False, error_message=f"{kind} {source_id} rejected")

        assigned = self.assign.get(kind, {}).get(source_id, source_id)
        return ImportResult(success=True, assigned_id=assigned, data={})

    async def update_settings(self, settings: dict[str, str]) -> ImportResult:
        self.settings_calls.append(settings)
        return self.settings_result

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]

    def payloads(self, kind: str) -> list[dict[str, Any]]:
        return [payload for call_kind, payload in self.calls if call_kind == kind]


def sample_entities() -> dict[str, list[Any]]:
    """A small but complete panel: one of everything, plus the reserved admin."""
    return {
        "locations": [Location(id=1, short="eu", long="Europe")],
        "nests": [Nest(id=1, name="Minecraft")],
        "eggs": [
            Egg(
                id=1,
                nest_id=1,
                name="Paper",
                variables=(EggVariable(id=10, egg_id=1, env_variable="SERVER_JARFILE"),),
            )
        ],
        "nodes": [Node(id=1, name="node-1", location_id=1, daemon_token="plain-token")],
        "database_hosts": [DatabaseHost(id=1, name="db", host="127.0.0.1", node_id=1)],
        "allocations": [Allocation(id=1, node_id=1, ip="0.0.0.0", port=25565)],
        "users": [
            User(id=1, username="admin", email="admin@example.com"),
            User(id=2, username="player", email="player@example.com"),
        ],
        "ssh_keys": [SshKey(id=1, user_id=2, name="laptop")],
        "servers": [Server(id=1, owner_id=2, node_id=1, allocation_id=1, nest_id=1, egg_id=1)],
        "server_databases": [ServerDatabase(id=1, server_id=1, database_host_id=1)],
        "backups": [Backup(id=1, server_id=1, name="nightly")],
        "subusers": [Subuser(id=1, user_id=2, server_id=1)],
        "schedules": [Schedule(id=1, server_id=1, name="restart")],
        "tasks": [Task(id=1, schedule_id=1, sequence_id=1, action="power", payload="restart")],
    }


@pytest.fixture
def fake_reader() -> FakeReader:
    return FakeReader(
        sample_entities(),
        server_variables={1: [ServerVariable(id=1, server_id=1, variable_id=10)]},
        settings={"settings::app:name": "My Panel"},
    )


@pytest.fixture
def fake_writer() -> FakeWriter:
    return FakeWriter()


@pytest.fixture
def progress_path(tmp_path: Path) -> Path:
    return tmp_path / ".migration-progress.json"


@pytest.fixture
def store(progress_path: Path) -> ProgressStore:
    return ProgressStore(progress_path)


@pytest.fixture
def no_countdown() -> MigrationOptions:
    return MigrationOptions(countdown_seconds=0)
