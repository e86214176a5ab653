"""Tests for application bootstrap: load once, autosave, shutdown."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import pytest
from rich.console import Console

from gtd.app.main import configure_logging, open_workspace, render_status
from gtd.app.state import Store
from gtd.shared.core.configuration import (
    ContextSeed,
    ContextsConfig,
    DatabaseConfig,
    LoggingConfig,
    PersistenceConfig,
    SystemConfig,
)
from gtd.shared.core.service_registry import get_persistence_service


@pytest.fixture
def config(tmp_path) -> SystemConfig:
    return SystemConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "db" / "gtd.duckdb")),
        persistence=PersistenceConfig(save_debounce=0.0),
    )


async def test_workspace_survives_restart(config):
    async with open_workspace(config) as store:
        assert store.gtd.is_ready
        assert Store.get() is store
        assert get_persistence_service() is not None

        gtd = store.gtd
        await gtd.add_inbox_item("Renew passport")
        launch = await gtd.add_project("Launch")
        action = await gtd.add_next_action("Write copy", project_id=launch, context_id="1")
        await gtd.complete_next_action(action)
        await gtd.add_next_action("Design logo", project_id=launch)

    assert not Store.is_initialized()
    assert get_persistence_service() is None

    async with open_workspace(config) as store:
        gtd = store.gtd
        assert [i.title for i in gtd.inbox_items] == ["Renew passport"]
        assert [p.name for p in gtd.projects] == ["Launch"]
        assert gtd.project_progress(launch) == 50
        assert gtd.get_next_action(action).completed_at is not None
        assert len(gtd.contexts) == 4


async def test_hydration_is_not_written_back(config, recorder):
    async with open_workspace(config) as store:
        await store.gtd.add_inbox_item("Renew passport")

    async with open_workspace(config) as store:
        await recorder.attach(store.bus, "persistence.saved")
        await store.bus.wait_until_idle()
        persistence = get_persistence_service()
        assert not persistence.has_pending_changes
    assert recorder.payloads("persistence.saved") == []


async def test_unreadable_database_opens_an_empty_workspace(config, caplog):
    db_file = Path(config.database.db_path)
    db_file.parent.mkdir(parents=True)
    db_file.write_bytes(b"this is not a duckdb file" * 100)

    with caplog.at_level(logging.WARNING):
        async with open_workspace(config) as store:
            assert store.gtd.is_ready
            assert store.gtd.inbox_items == ()
            assert not get_persistence_service().autosave_enabled

            await store.gtd.add_inbox_item("Still works in memory")
            assert len(store.gtd.inbox_items) == 1

    assert "Failed to open database" in caplog.text
    assert "starting with an empty workspace" in caplog.text


async def test_autosave_disabled_keeps_changes_in_memory(config):
    config = config.model_copy(update={"persistence": PersistenceConfig(autosave=False)})

    async with open_workspace(config) as store:
        await store.gtd.add_inbox_item("Forget me")

    async with open_workspace(config) as store:
        assert store.gtd.inbox_items == ()


async def test_contexts_follow_configured_seeds(config):
    config = config.model_copy(update={
        "contexts": ContextsConfig(seed=[ContextSeed(id="w", name="@work")]),
    })
    async with open_workspace(config) as store:
        assert [c.name for c in store.gtd.contexts] == ["@work"]


async def test_render_status(config):
    console = Console(record=True, width=100)

    async with open_workspace(config) as store:
        gtd = store.gtd
        await gtd.add_inbox_item("Renew passport")
        launch = await gtd.add_project("Launch")
        await gtd.update_project_progress(launch, 30)
        await gtd.add_next_action("Write copy", project_id=launch, context_id="2")
        await gtd.add_next_action("Stray thought")
        render_status(store, console)

    output = console.export_text()
    assert "1 item(s) to process" in output
    assert "Launch" in output
    assert "30% (manual)" in output
    assert "@home" in output
    assert "(no context)" in output


def test_configure_logging(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        log_file = configure_logging(LoggingConfig(level="debug", log_dir=str(tmp_path / "logs")))
        configure_logging(LoggingConfig(level="debug", log_dir=str(tmp_path / "logs")))

        assert log_file == tmp_path / "logs" / "gtd.log"
        assert log_file.exists()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_configure_logging_unknown_level_falls_back_to_info(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(LoggingConfig(level="chatty", log_dir=str(tmp_path)))
        assert root.level == logging.INFO
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
