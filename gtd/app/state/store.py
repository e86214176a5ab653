"""Global State Store - Service Locator Pattern.

Provides centralized access to the GTD state from any front end.
Implements the singleton pattern for consistent state access.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from .gtd_state import GTDState
from gtd.shared.core.event_bus import EventBus


class Store:
    """Global state store for the application.

    Usage:
        # During app initialization
        Store.initialize(event_bus)

        # Anywhere in a front end
        store = Store.get()
        await store.gtd.add_inbox_item("Call the plumber")
    """

    _instance: Optional['Store'] = None

    def __init__(self, event_bus: EventBus, contexts: Optional[Iterable[Any]] = None) -> None:
        """Initialize store with event bus.

        Note: Do not call directly. Use Store.initialize() instead.

        Args:
            event_bus: The shared event bus instance
            contexts: Optional context seeds
        """
        self.bus = event_bus
        self.gtd = GTDState(event_bus, contexts=contexts)

    @classmethod
    def initialize(cls, event_bus: EventBus, contexts: Optional[Iterable[Any]] = None) -> 'Store':
        """Initialize the global store instance.

        Should be called once during application startup.

        Raises:
            RuntimeError: If store is already initialized
        """
        if cls._instance is not None:
            raise RuntimeError("Store already initialized!")

        cls._instance = cls(event_bus, contexts=contexts)
        return cls._instance

    @classmethod
    def get(cls) -> 'Store':
        """Get the global store instance.

        Raises:
            RuntimeError: If store has not been initialized
        """
        if cls._instance is None:
            raise RuntimeError("Store not initialized! Call Store.initialize() first.")
        return cls._instance

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._instance is not None

    @classmethod
    def reset(cls) -> None:
        """Reset the store instance.

        Primarily used for testing and at shutdown.
        """
        cls._instance = None
