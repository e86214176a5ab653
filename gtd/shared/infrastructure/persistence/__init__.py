"""Persistence adapters (DuckDB key-value store)."""

from gtd.shared.infrastructure.persistence.duckdb_service import DuckDBPersistenceService
from gtd.shared.infrastructure.persistence.serialization import (
    collection_of,
    decode_collection,
    encode_collection,
)

__all__ = [
    "DuckDBPersistenceService",
    "collection_of",
    "decode_collection",
    "encode_collection",
]
