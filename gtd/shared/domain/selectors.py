"""Derived read models computed from a snapshot.

Nothing here is stored: progress, counts and filtered views are recomputed
from the current collections on every read.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .models import Context, GTDSnapshot, NextAction, Project


def project_action_counts(next_actions: Iterable[NextAction], project_id: str) -> Tuple[int, int]:
    """Return ``(active, completed)`` action counts for a project."""
    active = completed = 0
    for action in next_actions:
        if action.project_id != project_id:
            continue
        if action.completed:
            completed += 1
        else:
            active += 1
    return active, completed


def automatic_progress(next_actions: Iterable[NextAction], project_id: str) -> float:
    """Percentage of a project's actions that are completed (0 with no actions)."""
    active, completed = project_action_counts(next_actions, project_id)
    total = active + completed
    if total == 0:
        return 0.0
    return completed / total * 100


def project_progress(project: Project, next_actions: Iterable[NextAction]) -> float:
    """Displayed progress: the manual value when enabled, otherwise automatic."""
    if project.use_manual_progress:
        return project.manual_progress
    return automatic_progress(next_actions, project.id)


def filter_next_actions(
    next_actions: Iterable[NextAction],
    context_id: Optional[str] = None,
    project_id: Optional[str] = None,
    show_completed: bool = False,
) -> List[NextAction]:
    """Engage view: actions in the requested completion state, optionally
    narrowed to one context and/or one project."""
    result = []
    for action in next_actions:
        if action.completed != show_completed:
            continue
        if context_id and action.context_id != context_id:
            continue
        if project_id and action.project_id != project_id:
            continue
        result.append(action)
    return result


def resolve_project(snapshot: GTDSnapshot, project_id: Optional[str]) -> Optional[Project]:
    if not project_id:
        return None
    return next((p for p in snapshot.projects if p.id == project_id), None)


def resolve_context(snapshot: GTDSnapshot, context_id: Optional[str]) -> Optional[Context]:
    if not context_id:
        return None
    return next((c for c in snapshot.contexts if c.id == context_id), None)
