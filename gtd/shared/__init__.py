"""
PyGTD Shared Kernel
===================

State model and infrastructure shared by every PyGTD front end.

Architecture:
- core: EventBus, configuration, errors, service registry
- domain: Entities and derived read models (progress, filters)
- infrastructure: Durable storage adapters
"""

__version__ = "1.0.0"

__all__ = []
