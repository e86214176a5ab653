"""Exception hierarchy for the PyGTD engine."""

from __future__ import annotations


class GTDError(Exception):
    """Base class for all PyGTD errors."""


class ValidationRejected(GTDError, ValueError):
    """A required text field (title, name) was empty after trimming."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field} must not be empty")


class InvalidUpdate(GTDError, ValueError):
    """A partial update named fields that cannot be changed."""

    def __init__(self, entity: str, fields: set[str]) -> None:
        self.entity = entity
        self.fields = fields
        super().__init__(f"Cannot update {entity} field(s): {', '.join(sorted(fields))}")


class PersistenceError(GTDError):
    """Reading or writing a key in durable storage failed."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"Storage key '{key}': {message}")
