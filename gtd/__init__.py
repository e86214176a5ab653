"""PyGTD Engine package."""

from .shared.core.event_bus import EventBus
from .app.state import GTDState, Store

__all__ = ["EventBus", "GTDState", "Store"]
