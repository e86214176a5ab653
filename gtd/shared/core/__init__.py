"""
Shared Core Module
==================

Event system, configuration, errors and service registry.
"""

# Event System
from .event_bus import EventBus, EventPayload
from . import events

# Errors
from .errors import GTDError, InvalidUpdate, PersistenceError, ValidationRejected

# Service Infrastructure
from .service_registry import (
    get_persistence_service,
    set_persistence_service,
    register_cleanup_handler,
    unregister_cleanup_handler,
    run_cleanup_handlers,
)

# Configuration
from .configuration import (
    ConfigManager,
    SystemConfig,
    get_config_manager,
    get_config,
    ValidationLevel,
)

__all__ = [
    # Event System
    "EventBus",
    "EventPayload",
    "events",
    # Errors
    "GTDError",
    "InvalidUpdate",
    "PersistenceError",
    "ValidationRejected",
    # Service Registry
    "get_persistence_service",
    "set_persistence_service",
    "register_cleanup_handler",
    "unregister_cleanup_handler",
    "run_cleanup_handlers",
    # Configuration
    "ConfigManager",
    "SystemConfig",
    "get_config_manager",
    "get_config",
    "ValidationLevel",
]
