"""DuckDB Persistence Service for PyGTD.

Durable key-value storage for the store's collections. Each collection is a
JSON document in the ``kv_store`` table under a fixed key (``inboxItems``,
``projects``, ``nextActions`` and, when enabled, ``contexts``).

Autosave: the service subscribes to ``state.changed`` and coalesces every
change that arrives within ``save_debounce`` seconds into one flush of the
latest snapshot. Writes are per key and independent; a failing key is logged
and the others are still written.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import duckdb
from pydantic import ValidationError

from gtd.shared.core import events
from gtd.shared.core.errors import PersistenceError
from gtd.shared.core.event_bus import EventBus, EventPayload
from gtd.shared.domain.models import GTDSnapshot
from gtd.shared.infrastructure.persistence.serialization import (
    collection_of,
    decode_collection,
    encode_collection,
)

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class DuckDBPersistenceService:
    """Loads and saves the store's collections in a DuckDB key-value table."""

    def __init__(
        self,
        event_bus: EventBus,
        db_path: Optional[str] = None,
        *,
        save_debounce: float = 0.0,
        persist_contexts: bool = False,
    ):
        self.event_bus = event_bus
        self.db_path = str(db_path) if db_path is not None else MEMORY_DB
        self.save_debounce = save_debounce
        self.persist_contexts = persist_contexts
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

        self._io_lock: Optional[asyncio.Lock] = None
        self._autosave = False
        self._dirty: set[str] = set()
        self._latest: Optional[GTDSnapshot] = None
        self._flush_task: Optional[asyncio.Task] = None

    @property
    def collection_keys(self) -> tuple[str, ...]:
        if self.persist_contexts:
            return events.PERSISTED_COLLECTIONS + (events.COLLECTION_CONTEXTS,)
        return events.PERSISTED_COLLECTIONS

    async def start(self) -> None:
        """Open the database and create the key-value table.

        A database that cannot be opened is logged and left disconnected;
        loads then come back empty and saves fail per key.
        """
        self._io_lock = asyncio.Lock()
        try:
            if self.db_path != MEMORY_DB:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = duckdb.connect(self.db_path)
            self._create_schema()
        except (duckdb.Error, OSError) as e:
            logger.error(f"Failed to open database {self.db_path}: {e}")
            self.close()
            return
        logger.info(f"Database initialized: {self.db_path}")

    @property
    def connected(self) -> bool:
        return self.conn is not None

    def _create_schema(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key VARCHAR PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    # --- Raw key access (blocking; run in an executor from async code) ---

    def read_key(self, key: str) -> Optional[str]:
        """Return the stored text for ``key``, or None when the key is absent."""
        if self.conn is None:
            raise PersistenceError(key, "database not connected")
        try:
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", [key]
            ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError(key, str(e)) from e
        return row[0] if row else None

    def write_key(self, key: str, value: str) -> None:
        """Replace the stored text for ``key``."""
        if self.conn is None:
            raise PersistenceError(key, "database not connected")
        try:
            self.conn.execute("""
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT (key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, [key, value])
        except duckdb.Error as e:
            raise PersistenceError(key, str(e)) from e

    def stored_keys(self) -> List[str]:
        if self.conn is None:
            return []
        rows = self.conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row[0] for row in rows]

    # --- Load / save ---

    async def load(self) -> Dict[str, List[Any]]:
        """Read every persisted collection.

        Missing, unreadable or malformed keys come back as empty lists; the
        failure is logged, never raised. ``contexts`` is only present in the
        result when context persistence is enabled and a non-empty value was
        stored, so callers can fall back to the seeded contexts.
        """
        loaded: Dict[str, List[Any]] = {}
        async with self._lock():
            for key in self.collection_keys:
                items = await self._load_key(key)
                if key == events.COLLECTION_CONTEXTS and not items:
                    continue
                loaded[key] = items

        logger.info(
            "Loaded "
            + ", ".join(f"{len(items)} {key}" for key, items in loaded.items())
        )
        return loaded

    async def _load_key(self, key: str) -> List[Any]:
        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(None, self.read_key, key)
        except PersistenceError as e:
            logger.error(f"Error loading '{key}', using empty collection: {e}")
            return []

        if raw is None:
            return []

        try:
            return decode_collection(key, raw)
        except ValidationError as e:
            logger.error(f"Malformed data stored under '{key}', using empty collection: {e}")
            return []

    async def save(self, snapshot: GTDSnapshot, keys: Optional[Iterable[str]] = None) -> List[str]:
        """Write collections from ``snapshot``, one independent write per key.

        Returns:
            The keys that were written successfully
        """
        keys = list(keys) if keys is not None else list(self.collection_keys)
        loop = asyncio.get_running_loop()
        written: List[str] = []

        async with self._lock():
            for key in keys:
                try:
                    value = encode_collection(key, collection_of(snapshot, key))
                    await loop.run_in_executor(None, self.write_key, key, value)
                except PersistenceError as e:
                    logger.error(f"Error saving '{key}': {e}")
                    await self.event_bus.publish(
                        events.TOPIC_PERSISTENCE_FAILED,
                        events.create_persistence_failed_event(key, str(e)),
                    )
                    continue
                written.append(key)

        if written:
            logger.debug(f"Saved {', '.join(written)}")
            await self.event_bus.publish(
                events.TOPIC_PERSISTENCE_SAVED,
                events.create_persistence_saved_event(written),
            )
        return written

    def _lock(self) -> asyncio.Lock:
        if self._io_lock is None:
            self._io_lock = asyncio.Lock()
        return self._io_lock

    # --- Autosave ---

    async def enable_autosave(self) -> None:
        """Start saving after every store mutation."""
        await self.event_bus.subscribe(events.TOPIC_STATE_CHANGED, self.handle_state_changed)
        self._autosave = True

    async def disable_autosave(self) -> None:
        await self.event_bus.unsubscribe(events.TOPIC_STATE_CHANGED, self.handle_state_changed)
        self._autosave = False

    @property
    def autosave_enabled(self) -> bool:
        return self._autosave

    async def handle_state_changed(self, payload: EventPayload) -> None:
        """Record the touched collections and schedule a coalesced flush."""
        snapshot = payload.get("snapshot")
        if snapshot is None:
            return
        self._latest = snapshot
        self._dirty.update(
            key for key in payload.get("collections", []) if key in self.collection_keys
        )
        if not self._dirty:
            return
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_after_debounce())

    async def _flush_after_debounce(self) -> None:
        await asyncio.sleep(self.save_debounce)
        # Changes arriving during a save are picked up by the next pass
        while self._dirty:
            keys = sorted(self._dirty)
            self._dirty.clear()
            await self.save(self._latest, keys)

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._dirty) or (
            self._flush_task is not None and not self._flush_task.done()
        )

    async def flush(self) -> None:
        """Wait for the scheduled flush (if any) to finish writing."""
        task = self._flush_task
        if task is not None and not task.done():
            await task

    def close(self) -> None:
        """Close database connection."""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
