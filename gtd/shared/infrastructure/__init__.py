"""
Shared Infrastructure Module
=============================

Technical adapters for external systems.
"""

# Persistence
from gtd.shared.infrastructure.persistence.duckdb_service import DuckDBPersistenceService

__all__ = [
    "DuckDBPersistenceService",
]
