"""Service registry for cross-module access to initialized services."""

from __future__ import annotations

import atexit
import logging
from typing import TYPE_CHECKING, Callable, List, Optional

if TYPE_CHECKING:
    from gtd.shared.infrastructure.persistence.duckdb_service import DuckDBPersistenceService

logger = logging.getLogger(__name__)

_persistence_service: Optional["DuckDBPersistenceService"] = None

_cleanup_registered = False
_cleanup_handlers: List[Callable[[], None]] = []


def set_persistence_service(service: Optional["DuckDBPersistenceService"]) -> None:
    """Set (or clear) the global persistence service instance."""
    global _persistence_service
    _persistence_service = service


def get_persistence_service() -> Optional["DuckDBPersistenceService"]:
    """Get the global persistence service instance."""
    return _persistence_service


def register_cleanup_handler(handler: Callable[[], None]) -> None:
    """Register a cleanup handler to be called on interpreter exit."""
    global _cleanup_registered
    if handler in _cleanup_handlers:
        return
    _cleanup_handlers.append(handler)
    if not _cleanup_registered:
        atexit.register(run_cleanup_handlers)
        _cleanup_registered = True
        logger.debug("Registered atexit cleanup handler")


def unregister_cleanup_handler(handler: Callable[[], None]) -> None:
    if handler in _cleanup_handlers:
        _cleanup_handlers.remove(handler)


def run_cleanup_handlers() -> None:
    """Run and forget every registered cleanup handler."""
    if not _cleanup_handlers:
        return
    logger.info("Running application cleanup...")
    handlers = list(_cleanup_handlers)
    _cleanup_handlers.clear()
    for handler in handlers:
        try:
            handler()
        except Exception as e:
            logger.warning(f"Error in cleanup handler: {e}")
    logger.info("Application cleanup completed")
