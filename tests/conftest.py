"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from gtd.app.state import GTDState, Store
from gtd.shared.core.event_bus import EventBus, EventPayload
from gtd.shared.infrastructure.persistence.duckdb_service import DuckDBPersistenceService


class EventRecorder:
    """Collects payloads published on the topics it is attached to."""

    def __init__(self) -> None:
        self.events: List[tuple[str, EventPayload]] = []

    async def attach(self, bus: EventBus, topic: str) -> None:
        async def _record(payload: EventPayload) -> None:
            self.events.append((topic, payload))

        _record.__name__ = f"record_{topic}"
        await bus.subscribe(topic, _record)

    def payloads(self, topic: str) -> List[Dict[str, Any]]:
        return [payload for t, payload in self.events if t == topic]


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def state(bus) -> GTDState:
    return GTDState(bus)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def db_path(tmp_path):
    """DuckDB file inside a directory that does not exist yet."""
    return tmp_path / "data" / "gtd.duckdb"


@pytest.fixture
async def persistence(bus, db_path):
    """Started persistence service on a temp file, closed after the test."""
    service = DuckDBPersistenceService(bus, str(db_path))
    await service.start()
    yield service
    service.close()


@pytest.fixture(autouse=True)
def _reset_store():
    Store.reset()
    yield
    Store.reset()
