"""State management for PyGTD front ends.

Architecture:
- GTDState: The canonical state tree and its mutation API
- Store: Service locator for accessing state from any component
"""

from .gtd_state import GTDState
from .store import Store

__all__ = ["GTDState", "Store"]
