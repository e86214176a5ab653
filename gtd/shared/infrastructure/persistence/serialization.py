"""JSON codec for the persisted collections.

Each collection is written as a JSON array under its storage key. Decoding
goes through typed pydantic validation, which is what turns the ISO
timestamp strings back into ``datetime`` values.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from pydantic import TypeAdapter

from gtd.shared.core import events
from gtd.shared.core.errors import PersistenceError
from gtd.shared.domain.models import Context, GTDSnapshot, InboxItem, NextAction, Project

_ADAPTERS: Dict[str, TypeAdapter] = {
    events.COLLECTION_INBOX_ITEMS: TypeAdapter(List[InboxItem]),
    events.COLLECTION_PROJECTS: TypeAdapter(List[Project]),
    events.COLLECTION_CONTEXTS: TypeAdapter(List[Context]),
    events.COLLECTION_NEXT_ACTIONS: TypeAdapter(List[NextAction]),
}

_SNAPSHOT_FIELDS = {
    events.COLLECTION_INBOX_ITEMS: "inbox_items",
    events.COLLECTION_PROJECTS: "projects",
    events.COLLECTION_CONTEXTS: "contexts",
    events.COLLECTION_NEXT_ACTIONS: "next_actions",
}


def _adapter(key: str) -> TypeAdapter:
    try:
        return _ADAPTERS[key]
    except KeyError:
        raise PersistenceError(key, "unknown collection") from None


def collection_of(snapshot: GTDSnapshot, key: str) -> Sequence[Any]:
    """Return the snapshot collection stored under ``key``."""
    if key not in _SNAPSHOT_FIELDS:
        raise PersistenceError(key, "unknown collection")
    return getattr(snapshot, _SNAPSHOT_FIELDS[key])


def encode_collection(key: str, items: Sequence[Any]) -> str:
    return _adapter(key).dump_json(list(items), by_alias=True).decode("utf-8")


def decode_collection(key: str, raw: str) -> List[Any]:
    """Parse a stored JSON array back into entities.

    Raises:
        pydantic.ValidationError: If ``raw`` is not valid JSON or does not
            match the entity schema.
    """
    return _adapter(key).validate_json(raw)
