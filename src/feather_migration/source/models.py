"""Rows of the legacy Pterodactyl database.

One frozen dataclass per table the migration reads. Columns keep their
Pterodactyl names except the camelCase ones (``uuidShort``,
``daemonListen`` ...), which the reader aliases to snake_case.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, TypeVar

T = TypeVar("T")


def from_row(cls: type[T], row: dict[str, Any], **overrides: Any) -> T:
    """Build a dataclass from a result row, ignoring unknown columns.

    MySQL returns TINYINT(1) flags as integers; fields declared ``bool`` are
    coerced here.
    """
    values: dict[str, Any] = {}
    for f in dataclasses.fields(cls):  # type: ignore[arg-type]
        if f.name in overrides:
            values[f.name] = overrides[f.name]
        elif f.name in row:
            value = row[f.name]
            if f.type is bool and value is not None:
                value = bool(value)
            values[f.name] = value
    return cls(**values)


def format_timestamp(value: Any, sep: str = "T") -> str | None:
    """Render a database timestamp the way the import endpoints expect."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.strftime(f"%Y-%m-%d{sep}%H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return str(value)


@dataclass(frozen=True)
class Location:
    id: int
    short: str = ""
    long: str | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Nest:
    id: int
    uuid: str = ""
    author: str = ""
    name: str = ""
    description: str | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class EggVariable:
    id: int
    egg_id: int = 0
    name: str = ""
    description: str | None = None
    env_variable: str = ""
    default_value: str | None = None
    user_viewable: bool = False
    user_editable: bool = False
    rules: str | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Egg:
    """An egg (FeatherPanel spell) together with its variables."""

    id: int
    uuid: str = ""
    nest_id: int = 0
    author: str = ""
    name: str = ""
    description: str | None = None
    features: str | None = None
    docker_images: str | None = None
    file_denylist: str | None = None
    update_url: str | None = None
    config_files: str | None = None
    config_startup: str | None = None
    config_logs: str | None = None
    config_stop: str | None = None
    config_from: int | None = None
    startup: str | None = None
    script_container: str | None = None
    copy_script_from: int | None = None
    script_entry: str | None = None
    script_is_privileged: bool = True
    script_install: str | None = None
    force_outgoing_ip: bool = False
    created_at: Any = None
    updated_at: Any = None
    variables: tuple[EggVariable, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Node:
    id: int
    uuid: str = ""
    public: bool = True
    name: str = ""
    description: str | None = None
    location_id: int = 0
    fqdn: str = ""
    scheme: str = "https"
    behind_proxy: bool = False
    maintenance_mode: bool = False
    memory: int = 0
    memory_overallocate: int = 0
    disk: int = 0
    disk_overallocate: int = 0
    upload_size: int = 100
    daemon_token_id: str = ""
    daemon_token: str = ""
    daemon_listen: int = 8080
    daemon_sftp: int = 2022
    daemon_base: str = "/var/lib/pterodactyl/volumes"
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class DatabaseHost:
    id: int
    name: str = ""
    host: str = ""
    port: int = 3306
    username: str = ""
    password: str = ""
    max_databases: int | None = None
    node_id: int | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Allocation:
    id: int
    node_id: int = 0
    ip: str = ""
    ip_alias: str | None = None
    port: int = 0
    server_id: int | None = None
    notes: str | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class User:
    id: int
    uuid: str = ""
    username: str = ""
    email: str = ""
    name_first: str | None = None
    name_last: str | None = None
    password: str = ""
    remember_token: str | None = None
    external_id: str | None = None
    root_admin: bool = False
    use_totp: bool = False
    totp_secret: str | None = None
    language: str = "en"
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class SshKey:
    id: int
    user_id: int = 0
    name: str = ""
    fingerprint: str = ""
    public_key: str = ""
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class ServerVariable:
    id: int
    server_id: int = 0
    variable_id: int = 0
    variable_value: str | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Server:
    id: int
    uuid: str = ""
    uuid_short: str = ""
    node_id: int = 0
    name: str = ""
    description: str | None = None
    status: str | None = None
    skip_scripts: bool = False
    owner_id: int = 0
    memory: int = 0
    swap: int = 0
    disk: int = 0
    io: int = 500
    cpu: int = 0
    threads: str | None = None
    oom_disabled: bool = True
    allocation_id: int = 0
    nest_id: int = 0
    egg_id: int = 0
    startup: str = ""
    image: str = ""
    allocation_limit: int | None = None
    database_limit: int | None = None
    backup_limit: int = 0
    parent_id: int | None = None
    external_id: str | None = None
    installed_at: Any = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class ServerDatabase:
    id: int
    server_id: int = 0
    database_host_id: int = 0
    database: str = ""
    username: str = ""
    remote: str = "%"
    password: str = ""
    max_connections: int | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Backup:
    id: int
    server_id: int = 0
    uuid: str = ""
    upload_id: str | None = None
    is_successful: bool = False
    is_locked: bool = False
    name: str = ""
    ignored_files: str | None = None
    disk: str = "wings"
    checksum: str | None = None
    bytes: int = 0
    completed_at: Any = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Subuser:
    id: int
    user_id: int = 0
    server_id: int = 0
    permissions: str | None = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Schedule:
    id: int
    server_id: int = 0
    name: str = ""
    cron_day_of_week: str = "*"
    cron_month: str = "*"
    cron_day_of_month: str = "*"
    cron_hour: str = "*"
    cron_minute: str = "*"
    is_active: bool = True
    is_processing: bool = False
    only_when_online: bool = False
    last_run_at: Any = None
    next_run_at: Any = None
    created_at: Any = None
    updated_at: Any = None


@dataclass(frozen=True)
class Task:
    id: int
    schedule_id: int = 0
    sequence_id: int = 0
    action: str = ""
    payload: str = ""
    time_offset: int = 0
    is_queued: bool = False
    continue_on_failure: bool = False
    created_at: Any = None
    updated_at: Any = None
