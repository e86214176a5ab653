"""Tests for the DuckDB persistence service."""

from __future__ import annotations

import asyncio
import logging
import threading
import time

import pytest

from gtd.app.state import GTDState
from gtd.shared.core import events
from gtd.shared.core.errors import PersistenceError
from gtd.shared.domain.models import GTDSnapshot, Project
from gtd.shared.infrastructure.persistence.duckdb_service import DuckDBPersistenceService
from gtd.shared.infrastructure.persistence.serialization import (
    collection_of,
    decode_collection,
    encode_collection,
)


async def _populate(state: GTDState) -> None:
    await state.add_inbox_item("Buy milk", "2 litres")
    launch = await state.add_project("Launch", "site v2")
    await state.update_project_progress(launch, 57)
    copy = await state.add_next_action("Write copy", "", launch, "1")
    await state.add_next_action("Design logo", "", launch, None)
    await state.complete_next_action(copy)
    await state.add_context("@garden", "#00FF00")


class TestLoad:
    async def test_fresh_database_loads_empty(self, persistence):
        loaded = await persistence.load()
        assert loaded == {"inboxItems": [], "projects": [], "nextActions": []}

    async def test_creates_parent_directory(self, persistence, db_path):
        assert db_path.parent.is_dir()

    async def test_malformed_key_falls_back_to_empty(self, persistence, state, caplog):
        await _populate(state)
        await persistence.save(state.snapshot)
        persistence.write_key("projects", "{not json")

        with caplog.at_level(logging.ERROR):
            loaded = await persistence.load()

        assert loaded["projects"] == []
        assert len(loaded["inboxItems"]) == 1
        assert len(loaded["nextActions"]) == 2
        assert "projects" in caplog.text

    async def test_wrong_shape_falls_back_to_empty(self, persistence):
        persistence.write_key("inboxItems", '[{"description": "no title"}]')
        loaded = await persistence.load()
        assert loaded["inboxItems"] == []

    async def test_read_failure_falls_back_to_empty(self, persistence, monkeypatch):
        def broken_read(key):
            raise PersistenceError(key, "disk on fire")

        monkeypatch.setattr(persistence, "read_key", broken_read)
        loaded = await persistence.load()
        assert loaded == {"inboxItems": [], "projects": [], "nextActions": []}

    async def test_original_camel_case_documents_load(self, persistence):
        persistence.write_key("projects", """[{
            "id": "1712345678901", "name": "Launch", "description": "",
            "createdAt": "2024-04-05T10:00:00.000Z", "completed": false,
            "manualProgress": 140, "useManualProgress": true
        }]""")
        persistence.write_key("nextActions", """[{
            "id": "1712345678902", "title": "Write copy", "description": "",
            "projectId": "1712345678901", "contextId": null,
            "createdAt": "2024-04-05T10:01:00.000Z", "completed": false
        }]""")

        loaded = await persistence.load()

        [project] = loaded["projects"]
        assert project.manual_progress == 100
        assert project.created_at.year == 2024
        [action] = loaded["nextActions"]
        assert action.project_id == project.id
        assert action.completed_at is None


class TestUnreadableDatabase:
    @pytest.fixture
    def corrupt_db(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_bytes(b"this is not a duckdb file" * 100)
        return db_path

    async def test_start_logs_and_stays_disconnected(self, bus, corrupt_db, caplog):
        service = DuckDBPersistenceService(bus, str(corrupt_db))
        with caplog.at_level(logging.ERROR):
            await service.start()

        assert not service.connected
        assert "Failed to open database" in caplog.text

    async def test_load_and_save_degrade_to_logged_failures(self, bus, corrupt_db, state):
        service = DuckDBPersistenceService(bus, str(corrupt_db))
        await service.start()
        await state.add_inbox_item("kept in memory")

        assert await service.load() == {"inboxItems": [], "projects": [], "nextActions": []}
        assert await service.save(state.snapshot) == []
        assert corrupt_db.read_bytes().startswith(b"this is not a duckdb file")


class TestSave:
    async def test_round_trip(self, persistence, state, bus):
        await _populate(state)
        written = await persistence.save(state.snapshot)
        assert written == ["inboxItems", "projects", "nextActions"]

        loaded = await persistence.load()
        assert loaded["inboxItems"] == list(state.inbox_items)
        assert loaded["projects"] == list(state.projects)
        assert loaded["nextActions"] == list(state.next_actions)

        completed = [a for a in loaded["nextActions"] if a.completed]
        assert completed[0].completed_at == state.next_actions[0].completed_at

        # contexts are not persisted: a fresh state is back to the seeds
        restored = GTDState(bus)
        await restored.hydrate(
            loaded["inboxItems"], loaded["projects"], loaded["nextActions"], loaded.get("contexts")
        )
        assert [c.name for c in restored.contexts] == ["@computer", "@home", "@errands", "@phone"]
        assert restored.project_progress(state.projects[0].id) == 57

    async def test_stored_documents_use_camel_case(self, persistence, state):
        await _populate(state)
        await persistence.save(state.snapshot)

        raw = persistence.read_key("projects")
        assert '"manualProgress":57' in raw
        assert '"useManualProgress":true' in raw
        assert persistence.stored_keys() == ["inboxItems", "nextActions", "projects"]

    async def test_partial_failure_writes_the_other_keys(self, persistence, state, bus, recorder, monkeypatch):
        await _populate(state)
        await recorder.attach(bus, events.TOPIC_PERSISTENCE_FAILED)
        original_write = persistence.write_key

        def flaky_write(key, value):
            if key == "projects":
                raise PersistenceError(key, "disk full")
            original_write(key, value)

        monkeypatch.setattr(persistence, "write_key", flaky_write)
        written = await persistence.save(state.snapshot)
        await bus.wait_until_idle()

        assert written == ["inboxItems", "nextActions"]
        assert persistence.read_key("projects") is None
        [failure] = recorder.payloads(events.TOPIC_PERSISTENCE_FAILED)
        assert failure["key"] == "projects"

    async def test_save_replaces_previous_value(self, persistence, state):
        item_id = await state.add_inbox_item("first")
        await persistence.save(state.snapshot)
        await state.remove_inbox_item(item_id)
        await persistence.save(state.snapshot)

        loaded = await persistence.load()
        assert loaded["inboxItems"] == []

    async def test_save_without_connection_is_logged(self, bus, caplog):
        service = DuckDBPersistenceService(bus)
        with caplog.at_level(logging.ERROR):
            written = await service.save(GTDSnapshot())
        assert written == []
        assert "not connected" in caplog.text


class TestContextPersistence:
    async def test_opt_in_round_trip(self, bus, db_path, state):
        service = DuckDBPersistenceService(bus, str(db_path), persist_contexts=True)
        await service.start()
        try:
            await state.add_context("@garden", "#00FF00")
            await service.save(state.snapshot)
            loaded = await service.load()
        finally:
            service.close()

        assert [c.name for c in loaded["contexts"]][-1] == "@garden"
        assert len(loaded["contexts"]) == 5

    async def test_opt_in_without_stored_contexts_omits_key(self, bus, db_path):
        service = DuckDBPersistenceService(bus, str(db_path), persist_contexts=True)
        await service.start()
        try:
            loaded = await service.load()
        finally:
            service.close()
        assert "contexts" not in loaded


class TestAutosave:
    async def test_mutations_are_flushed(self, bus, db_path, state):
        service = DuckDBPersistenceService(bus, str(db_path), save_debounce=0.01)
        await service.start()
        await service.enable_autosave()
        try:
            await _populate(state)
            await bus.wait_until_idle()
            await service.flush()
            loaded = await service.load()
        finally:
            service.close()

        assert loaded["inboxItems"] == list(state.inbox_items)
        assert loaded["projects"] == list(state.projects)
        assert loaded["nextActions"] == list(state.next_actions)

    async def test_rapid_mutations_are_coalesced(self, bus, db_path, state, recorder):
        service = DuckDBPersistenceService(bus, str(db_path), save_debounce=0.05)
        await service.start()
        await service.enable_autosave()
        await recorder.attach(bus, events.TOPIC_PERSISTENCE_SAVED)
        try:
            for n in range(5):
                await state.add_inbox_item(f"item {n}")
            await bus.wait_until_idle()
            await service.flush()
            await bus.wait_until_idle()
        finally:
            service.close()

        assert recorder.payloads(events.TOPIC_PERSISTENCE_SAVED) == [{"keys": ["inboxItems"]}]

    async def test_changes_during_a_save_are_written_by_the_next_pass(self, bus, db_path, state, monkeypatch):
        service = DuckDBPersistenceService(bus, str(db_path))
        await service.start()
        await service.enable_autosave()

        writes = []
        writing = threading.Event()
        original_write = service.write_key

        def slow_write(key, value):
            writing.set()
            time.sleep(0.2)
            writes.append(value)
            original_write(key, value)

        monkeypatch.setattr(service, "write_key", slow_write)
        try:
            await state.add_inbox_item("one")
            await bus.wait_until_idle()
            assert await asyncio.to_thread(writing.wait, 5)

            await state.add_inbox_item("two")
            await bus.wait_until_idle()
            assert service.has_pending_changes

            await service.flush()
            loaded = await service.load()
        finally:
            service.close()

        # the first save ran to completion with the state it started from
        assert len(writes) == 2
        assert '"one"' in writes[0] and '"two"' not in writes[0]
        assert [i.title for i in loaded["inboxItems"]] == ["one", "two"]

    async def test_context_changes_are_not_saved_by_default(self, bus, persistence, state, recorder):
        await persistence.enable_autosave()
        await recorder.attach(bus, events.TOPIC_PERSISTENCE_SAVED)

        await state.add_context("@garden", "#00FF00")
        await bus.wait_until_idle()
        await persistence.flush()

        assert not persistence.has_pending_changes
        assert recorder.payloads(events.TOPIC_PERSISTENCE_SAVED) == []
        assert persistence.stored_keys() == []

    async def test_disable_autosave(self, bus, persistence, state):
        await persistence.enable_autosave()
        assert persistence.autosave_enabled
        await persistence.disable_autosave()

        await state.add_inbox_item("memory only")
        await bus.wait_until_idle()
        await persistence.flush()

        assert persistence.read_key("inboxItems") is None


class TestSerialization:
    def test_unknown_collection(self):
        with pytest.raises(PersistenceError):
            collection_of(GTDSnapshot(), "tags")
        with pytest.raises(PersistenceError):
            encode_collection("tags", [])

    def test_dates_are_rebuilt(self):
        project = Project(name="Launch")
        [decoded] = decode_collection("projects", encode_collection("projects", [project]))
        assert decoded.created_at == project.created_at
