"""End-to-end runs of the Run Controller against the in-memory panels."""

import asyncio
from pathlib import Path

import pytest
from conftest import FakeReader, FakeWriter, sample_entities

from feather_migration.client.exceptions import (
    MigrationAlreadyCompletedError,
    MigrationCancelledError,
    StateError,
    StepFailedError,
)
from feather_migration.config import MigrationOptions
from feather_migration.migration.coordinator import MigrationCoordinator, MigrationPrompts
from feather_migration.migration.state import (
    ALL_STEPS_COMPLETED,
    CANCELLED_BY_USER,
    MigrationState,
    MigrationStatus,
    ProgressStore,
)
from feather_migration.resources import StepInfo, get_step_ids
from feather_migration.source.models import User
from feather_migration.utils.crypto import LaravelDecryptor

APP_KEY = "base64:" + "A" * 43 + "="


def _coordinator(
    store: ProgressStore,
    reader: FakeReader,
    writer: FakeWriter,
    options: MigrationOptions | None = None,
    prompts: MigrationPrompts | None = None,
    app_key: str | None = APP_KEY,
) -> MigrationCoordinator:
    return MigrationCoordinator(
        store,
        reader,
        writer,
        decryptor=LaravelDecryptor(app_key) if app_key else None,
        options=options or MigrationOptions(countdown_seconds=0),
        prompts=prompts,
    )


class RecordingPrompts(MigrationPrompts):
    def __init__(self, cancel_at: str | None = None, error: type[BaseException] | None = None):
        self.cancel_at = cancel_at
        self.error = error or MigrationCancelledError
        self.countdowns: list[tuple[str, int]] = []

    async def countdown(self, step: StepInfo, item_count: int, seconds: int) -> None:
        self.countdowns.append((step.step_id, item_count))
        if step.step_id == self.cancel_at:
            raise self.error("stop")


class TestFullRun:
    @pytest.mark.asyncio
    async def test_all_steps_complete(self, store, fake_reader, fake_writer):
        coordinator = _coordinator(store, fake_reader, fake_writer)
        coordinator.prepare(pterodactyl_path="/var/www/pterodactyl")

        summary = await coordinator.run()

        saved = store.load()
        assert saved is not None
        assert saved.status == MigrationStatus.COMPLETED
        assert saved.last_completed_step == ALL_STEPS_COMPLETED
        assert saved.completed_steps == get_step_ids()
        assert saved.pterodactyl_path == "/var/www/pterodactyl"

        assert summary.steps_executed == 15
        assert summary.total_failed == 0
        # The reserved admin user is the only skip
        assert summary.total_skipped == 1
        assert summary.total_imported == 14

    @pytest.mark.asyncio
    async def test_writes_follow_step_order(self, store, fake_reader, fake_writer):
        coordinator = _coordinator(store, fake_reader, fake_writer)
        coordinator.prepare()

        await coordinator.run()

        assert fake_writer.settings_calls[0]["app_name"] == "My Panel"
        assert fake_writer.kinds() == [
            "location",
            "realm",
            "spell",
            "node",
            "database_host",
            "allocation",
            "user",
            "ssh_key",
            "server",
            "database",
            "backup",
            "subuser",
            "schedule",
            "task",
        ]

    @pytest.mark.asyncio
    async def test_changed_ids_flow_into_later_steps(self, store, fake_reader, fake_writer):
        fake_writer.assign["location"] = {1: 42}
        fake_writer.assign["server"] = {1: 77}
        coordinator = _coordinator(store, fake_reader, fake_writer)
        coordinator.prepare()

        await coordinator.run()

        assert fake_writer.payloads("node")[0]["node"]["location_id"] == 42
        assert fake_writer.payloads("backup")[0]["backup"]["server_id"] == 77
        assert fake_writer.payloads("subuser")[0]["subuser"]["server_id"] == 77

        saved = store.load()
        assert saved.step_details["location_to_location_mapping"] == {"1": 42}

    @pytest.mark.asyncio
    async def test_item_failures_do_not_stop_the_run(self, store, fake_writer):
        entities = sample_entities()
        entities["users"] = [User(id=i, username=f"u{i}") for i in range(2, 7)]
        fake_writer.reject["user"] = {3, 4, 5}
        coordinator = _coordinator(store, FakeReader(entities), fake_writer)
        coordinator.prepare()

        summary = await coordinator.run()

        users = next(step for step in summary.steps if step.step_id == "import_users")
        assert users.imported == 2
        assert users.failed == 3
        saved = store.load()
        assert saved.status == MigrationStatus.COMPLETED
        assert saved.step_details["user_to_user_mapping"] == {"2": 2, "6": 6}

    @pytest.mark.asyncio
    async def test_empty_source_stops_at_first_required_mapping(self, store, fake_writer):
        coordinator = _coordinator(store, FakeReader(), fake_writer)
        coordinator.prepare()

        with pytest.raises(StepFailedError) as exc_info:
            await coordinator.run()

        assert exc_info.value.step_id == "import_eggs"
        assert fake_writer.calls == []
        saved = store.load()
        assert saved.status == MigrationStatus.FAILED
        assert saved.completed_steps == ["migrate_settings", "import_locations", "import_nests"]
        assert saved.step_details["locations_count"] == 0


class TestResume:
    @pytest.mark.asyncio
    async def test_interrupted_run_reads_each_table_once(self, store, fake_reader, fake_writer):
        prompts = RecordingPrompts(cancel_at="import_eggs")
        options = MigrationOptions(countdown_seconds=3)
        first = _coordinator(store, fake_reader, fake_writer, options, prompts)
        first.prepare()
        with pytest.raises(MigrationCancelledError):
            await first.run()

        second = _coordinator(store, fake_reader, fake_writer)
        second.prepare(confirm_resume=lambda _state: True)
        summary = await second.run()

        assert fake_reader.reads.count("locations") == 1
        assert fake_reader.reads.count("nests") == 1
        assert fake_reader.reads.count("eggs") == 2
        assert [step.already_completed for step in summary.steps[:3]] == [True] * 3
        assert store.load().status == MigrationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_completed_steps_are_not_read_again(self, store, fake_reader, fake_writer):
        state = MigrationState.start()
        state.mark_step_completed("migrate_settings", {"updated_settings_count": 2})
        state.mark_step_completed(
            "import_locations",
            {
                "location_to_location_mapping": {"1": 1},
                "imported_location_ids": [1],
                "source_location_ids": [1],
            },
        )
        state.mark_failed("Step 3: Importing Nests (Realms) - Failed", "boom")
        store.save(state)

        coordinator = _coordinator(store, fake_reader, fake_writer)
        coordinator.prepare(confirm_resume=lambda _state: True)
        summary = await coordinator.run()

        assert coordinator.resumed
        assert summary.resumed
        assert "locations" not in fake_reader.reads
        assert fake_writer.settings_calls == []
        assert fake_writer.kinds()[0] == "realm"
        assert summary.steps[0].already_completed
        assert summary.steps_executed == 13
        assert store.load().status == MigrationStatus.COMPLETED

    def test_declined_resume_starts_fresh(self, store, fake_reader, fake_writer):
        state = MigrationState.start()
        state.mark_step_completed("migrate_settings", {})
        store.save(state)

        coordinator = _coordinator(store, fake_reader, fake_writer)
        fresh = coordinator.prepare(confirm_resume=lambda _state: False)

        assert fresh.completed_steps == []
        assert not coordinator.resumed
        assert store.load().completed_steps == []

    def test_reset_ignores_saved_progress(self, store, fake_reader, fake_writer):
        state = MigrationState.start()
        state.mark_step_completed("migrate_settings", {})
        store.save(state)

        asked = []
        coordinator = _coordinator(store, fake_reader, fake_writer)
        fresh = coordinator.prepare(reset=True, confirm_resume=asked.append)

        assert asked == []
        assert fresh.completed_steps == []

    def test_reset_starts_over_after_a_completed_migration(self, store, fake_reader, fake_writer):
        state = MigrationState.start()
        state.mark_completed()
        store.save(state)

        coordinator = _coordinator(store, fake_reader, fake_writer)
        fresh = coordinator.prepare(reset=True)

        assert fresh.status == MigrationStatus.IN_PROGRESS
        assert not coordinator.resumed
        assert store.load().completed_steps == []

    def test_reset_fails_when_progress_cannot_be_removed(
        self, store, fake_reader, fake_writer, monkeypatch
    ):
        state = MigrationState.start()
        state.mark_step_completed("migrate_settings", {})
        store.save(state)

        def refuse(self, missing_ok=False):
            raise PermissionError("read-only file system")

        monkeypatch.setattr(Path, "unlink", refuse)
        coordinator = _coordinator(store, fake_reader, fake_writer)

        with pytest.raises(StateError, match="Could not remove"):
            coordinator.prepare(reset=True)

        assert coordinator.state is None
        monkeypatch.undo()
        assert store.load().completed_steps == ["migrate_settings"]

    def test_completed_migration_is_refused(self, store, fake_reader, fake_writer):
        state = MigrationState.start()
        state.mark_completed()
        store.save(state)

        coordinator = _coordinator(store, fake_reader, fake_writer)
        with pytest.raises(MigrationAlreadyCompletedError):
            coordinator.prepare()

        assert store.load().status == MigrationStatus.COMPLETED


class TestFailure:
    @pytest.mark.asyncio
    async def test_aborted_step_halts_and_can_be_resumed(self, store, fake_reader, fake_writer):
        coordinator = _coordinator(store, fake_reader, fake_writer, app_key=None)
        coordinator.prepare()

        with pytest.raises(StepFailedError) as exc_info:
            await coordinator.run()

        assert exc_info.value.step_id == "import_nodes"
        saved = store.load()
        assert saved.status == MigrationStatus.FAILED
        assert saved.current_step == "Step 5: Importing Nodes - Failed"
        assert "APP_KEY" in saved.error_message
        assert saved.completed_steps == get_step_ids()[:4]
        assert "allocation" not in fake_writer.kinds()

        # Second invocation with the key available picks up at step 5
        writer = FakeWriter()
        retry = _coordinator(store, fake_reader, writer)
        retry.prepare(confirm_resume=lambda _state: True)
        await retry.run()

        assert writer.kinds()[0] == "node"
        assert store.load().status == MigrationStatus.COMPLETED


class TestCancellation:
    @pytest.mark.parametrize("error", [MigrationCancelledError, asyncio.CancelledError])
    @pytest.mark.asyncio
    async def test_cancel_during_countdown(self, store, fake_reader, fake_writer, error):
        prompts = RecordingPrompts(cancel_at="import_nests", error=error)
        options = MigrationOptions(countdown_seconds=3)
        coordinator = _coordinator(store, fake_reader, fake_writer, options, prompts)
        coordinator.prepare()

        with pytest.raises(MigrationCancelledError):
            await coordinator.run()

        saved = store.load()
        assert saved.status == MigrationStatus.CANCELLED
        assert saved.current_step == CANCELLED_BY_USER
        assert saved.completed_steps == ["migrate_settings", "import_locations"]
        assert "realm" not in fake_writer.kinds()
        assert prompts.countdowns[-1] == ("import_nests", 1)

    @pytest.mark.asyncio
    async def test_countdown_skipped_when_disabled(self, store, fake_reader, fake_writer):
        prompts = RecordingPrompts()
        coordinator = _coordinator(store, fake_reader, fake_writer, prompts=prompts)
        coordinator.prepare()

        await coordinator.run()

        assert prompts.countdowns == []
