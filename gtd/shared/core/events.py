"""Canonical event definitions for PyGTD."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

from .event_bus import EventPayload

if TYPE_CHECKING:
    from gtd.shared.domain.models import GTDSnapshot

# Store topics
TOPIC_STATE_CHANGED = "state.changed"
TOPIC_STATE_LOADED = "state.loaded"
TOPIC_STORE_READY = "store.ready"

# Persistence topics
TOPIC_PERSISTENCE_SAVED = "persistence.saved"
TOPIC_PERSISTENCE_FAILED = "persistence.failed"

# Collection keys as they appear in events and in durable storage
COLLECTION_INBOX_ITEMS = "inboxItems"
COLLECTION_PROJECTS = "projects"
COLLECTION_CONTEXTS = "contexts"
COLLECTION_NEXT_ACTIONS = "nextActions"

PERSISTED_COLLECTIONS = (
    COLLECTION_INBOX_ITEMS,
    COLLECTION_PROJECTS,
    COLLECTION_NEXT_ACTIONS,
)


def create_state_changed_event(
    operation: str,
    collections: Iterable[str],
    snapshot: "GTDSnapshot",
) -> EventPayload:
    """Create a state changed event.

    Args:
        operation: Name of the store operation that produced the snapshot
        collections: Collection keys touched by the operation
        snapshot: The complete state after the operation
    """
    return {
        "operation": operation,
        "collections": list(collections),
        "snapshot": snapshot,
    }


def create_state_loaded_event(snapshot: "GTDSnapshot") -> EventPayload:
    """Create a state loaded event (persisted data hydrated into the store)."""
    return {"snapshot": snapshot}


def create_persistence_saved_event(keys: List[str]) -> EventPayload:
    return {"keys": keys}


def create_persistence_failed_event(key: str, error: str) -> EventPayload:
    """Create a persistence failure event for one storage key."""
    return {"key": key, "error": error}
