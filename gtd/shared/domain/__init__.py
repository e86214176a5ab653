"""Domain entities and derived read models."""

from .models import (
    DEFAULT_CONTEXTS,
    Context,
    Disposition,
    GTDSnapshot,
    InboxItem,
    NextAction,
    ProcessResult,
    Project,
    clamp_progress,
    new_id,
    seed_contexts,
    utcnow,
)
from .selectors import (
    automatic_progress,
    filter_next_actions,
    project_action_counts,
    project_progress,
    resolve_context,
    resolve_project,
)

__all__ = [
    "DEFAULT_CONTEXTS",
    "Context",
    "Disposition",
    "GTDSnapshot",
    "InboxItem",
    "NextAction",
    "ProcessResult",
    "Project",
    "clamp_progress",
    "new_id",
    "seed_contexts",
    "utcnow",
    "automatic_progress",
    "filter_next_actions",
    "project_action_counts",
    "project_progress",
    "resolve_context",
    "resolve_project",
]
