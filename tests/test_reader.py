"""Tests for reading a panel database, using SQLite in place of MySQL."""

from collections.abc import Iterator
from datetime import date, datetime

import pytest
from sqlalchemy import Engine, text

from feather_migration.client.exceptions import ConfigurationError, SourceError
from feather_migration.source.database import (
    REQUIRED_TABLES,
    check_required_tables,
    create_source_engine,
    verify_connection,
)
from feather_migration.source.models import Egg, format_timestamp
from feather_migration.source.reader import PterodactylReader

SCHEMA = [
    "CREATE TABLE locations (id INTEGER PRIMARY KEY, short TEXT, long TEXT, "
    "created_at TEXT, updated_at TEXT)",
    "CREATE TABLE eggs (id INTEGER PRIMARY KEY, uuid TEXT, nest_id INTEGER, author TEXT, "
    "name TEXT, description TEXT, features TEXT, docker_images TEXT, file_denylist TEXT, "
    "update_url TEXT, config_files TEXT, config_startup TEXT, config_logs TEXT, "
    "config_stop TEXT, config_from INTEGER, startup TEXT, script_container TEXT, "
    "copy_script_from INTEGER, script_entry TEXT, script_is_privileged INTEGER, "
    "script_install TEXT, created_at TEXT, updated_at TEXT, force_outgoing_ip INTEGER)",
    "CREATE TABLE egg_variables (id INTEGER PRIMARY KEY, egg_id INTEGER, name TEXT, "
    "description TEXT, env_variable TEXT, default_value TEXT, user_viewable INTEGER, "
    "user_editable INTEGER, rules TEXT, created_at TEXT, updated_at TEXT)",
    "CREATE TABLE user_ssh_keys (id INTEGER PRIMARY KEY, user_id INTEGER, name TEXT, "
    "fingerprint TEXT, public_key TEXT, created_at TEXT, updated_at TEXT, deleted_at TEXT)",
    "CREATE TABLE server_variables (id INTEGER PRIMARY KEY, server_id INTEGER, "
    "variable_id INTEGER, variable_value TEXT, created_at TEXT, updated_at TEXT)",
    'CREATE TABLE settings (id INTEGER PRIMARY KEY, "key" TEXT, value TEXT)',
]

ROWS = [
    "INSERT INTO locations (id, short, long) VALUES (7, 'us', 'United States'), (5, 'eu', NULL)",
    "INSERT INTO eggs (id, nest_id, name, script_is_privileged, force_outgoing_ip) "
    "VALUES (1, 1, 'Paper', 1, 0), (2, 1, 'Vanilla', 0, 1)",
    "INSERT INTO egg_variables (id, egg_id, name, env_variable, user_viewable, user_editable) "
    "VALUES (11, 1, 'Jar', 'SERVER_JARFILE', 1, 0), (10, 1, 'Build', 'BUILD_NUMBER', 1, 1)",
    "INSERT INTO user_ssh_keys (id, user_id, name, deleted_at) "
    "VALUES (1, 2, 'laptop', NULL), (2, 2, 'old', '2024-01-01 00:00:00')",
    "INSERT INTO server_variables (id, server_id, variable_id, variable_value) "
    "VALUES (1, 1, 10, 'latest'), (2, 2, 10, '1.20')",
    "INSERT INTO settings (\"key\", value) VALUES ('settings::app:name', 'My Panel')",
]


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_source_engine("sqlite://")
    with engine.begin() as conn:
        for statement in SCHEMA + ROWS:
            conn.execute(text(statement))
    yield engine
    engine.dispose()


@pytest.fixture
def reader(engine: Engine) -> PterodactylReader:
    return PterodactylReader(engine)


class TestPterodactylReader:
    def test_rows_come_back_in_id_order(self, reader):
        locations = reader.list_locations()

        assert [location.id for location in locations] == [5, 7]
        assert locations[1].short == "us"
        assert locations[0].long is None

    def test_eggs_carry_their_variables(self, reader):
        eggs = reader.list_eggs()

        assert [egg.id for egg in eggs] == [1, 2]
        paper, vanilla = eggs
        assert [variable.id for variable in paper.variables] == [10, 11]
        assert vanilla.variables == ()
        assert isinstance(paper, Egg)

    def test_flags_are_booleans(self, reader):
        paper, vanilla = reader.list_eggs()

        assert paper.script_is_privileged is True
        assert vanilla.force_outgoing_ip is True
        assert paper.variables[1].user_editable is False

    def test_soft_deleted_rows_are_left_out(self, reader):
        assert [key.name for key in reader.list_ssh_keys()] == ["laptop"]

    def test_server_variables_per_server(self, reader):
        variables = reader.list_server_variables(2)

        assert len(variables) == 1
        assert variables[0].variable_value == "1.20"

    def test_list_entities_dispatches_by_kind(self, reader):
        assert [location.id for location in reader.list_entities("locations")] == [5, 7]

    def test_list_entities_unknown_kind(self, reader):
        with pytest.raises(ValueError):
            reader.list_entities("mounts")

    def test_get_setting(self, reader):
        assert reader.get_setting("settings::app:name") == "My Panel"
        assert reader.get_setting("settings::missing") is None

    def test_missing_table_is_a_source_error(self, reader):
        with pytest.raises(SourceError):
            reader.list_users()


class TestDatabase:
    def test_verify_connection(self, engine):
        verify_connection(engine)

    def test_required_tables_report(self, engine):
        existing, missing = check_required_tables(engine)

        assert "locations" in existing
        assert "settings" in existing
        assert "servers" in missing
        assert sorted(existing + missing) == sorted(REQUIRED_TABLES)

    def test_empty_url(self):
        with pytest.raises(ConfigurationError):
            create_source_engine("")

    def test_invalid_url(self):
        with pytest.raises(ConfigurationError):
            create_source_engine("not a url")


class TestFormatTimestamp:
    def test_values(self):
        moment = datetime(2024, 5, 1, 12, 30, 0)
        assert format_timestamp(moment) == "2024-05-01T12:30:00"
        assert format_timestamp(moment, sep=" ") == "2024-05-01 12:30:00"
        assert format_timestamp(date(2024, 5, 1)) == "2024-05-01"
        assert format_timestamp("2024-05-01 12:30:00") == "2024-05-01 12:30:00"
        assert format_timestamp(None) is None
        assert format_timestamp("") is None
