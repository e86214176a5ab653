"""GTD State Management.

Holds the canonical state tree {inbox items, projects, contexts, next
actions} as an immutable snapshot and exposes the closed set of operations
that may change it.

Every operation builds one complete replacement snapshot and swaps it in
before awaiting anything, then announces the change on the EventBus. Callers
never wait for persistence: observers such as the DuckDB service react to
``state.changed`` in their own tasks.

Missing ids are tolerated silently. An operation that changes nothing
publishes nothing.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from gtd.shared.core import events
from gtd.shared.core.errors import InvalidUpdate, ValidationRejected
from gtd.shared.core.event_bus import EventBus
from gtd.shared.domain import selectors
from gtd.shared.domain.models import (
    Context,
    Disposition,
    GTDModel,
    GTDSnapshot,
    InboxItem,
    NextAction,
    ProcessResult,
    Project,
    clamp_progress,
    seed_contexts,
    utcnow,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=GTDModel)

INBOX = events.COLLECTION_INBOX_ITEMS
PROJECTS = events.COLLECTION_PROJECTS
CONTEXTS = events.COLLECTION_CONTEXTS
NEXT_ACTIONS = events.COLLECTION_NEXT_ACTIONS


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationRejected(field)
    return text


def _check_update_fields(model: Type[GTDModel], entity: str, changes: dict) -> None:
    allowed = set(model.model_fields) - {"id"}
    rejected = set(changes) - allowed
    if rejected:
        raise InvalidUpdate(entity, rejected)


def _merge(entity: M, changes: dict) -> M:
    """Validated copy of ``entity`` with ``changes`` applied."""
    return type(entity).model_validate({**entity.model_dump(), **changes})


def _index_of(items: Sequence[GTDModel], entity_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.id == entity_id:
            return index
    return None


def _replace_at(items: Tuple[M, ...], index: int, item: M) -> Tuple[M, ...]:
    return items[:index] + (item,) + items[index + 1:]


class GTDState:
    """Single source of truth for the capture → process → engage workflow.

    The state assumes sequential calls from one event loop and does no
    locking of its own.
    """

    def __init__(self, event_bus: EventBus, contexts: Optional[Iterable[Any]] = None) -> None:
        """Initialize the state with seeded contexts.

        Args:
            event_bus: The shared event bus that receives change notifications
            contexts: Context seeds (config objects or dicts); defaults to the
                four built-in contexts
        """
        self.bus = event_bus
        self._seed_contexts = seed_contexts(contexts)
        self._snapshot = GTDSnapshot(contexts=self._seed_contexts)
        self.is_ready = False

    # --- Read access ---

    @property
    def snapshot(self) -> GTDSnapshot:
        return self._snapshot

    @property
    def inbox_items(self) -> Tuple[InboxItem, ...]:
        return self._snapshot.inbox_items

    @property
    def projects(self) -> Tuple[Project, ...]:
        return self._snapshot.projects

    @property
    def contexts(self) -> Tuple[Context, ...]:
        return self._snapshot.contexts

    @property
    def next_actions(self) -> Tuple[NextAction, ...]:
        return self._snapshot.next_actions

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    def get_inbox_item(self, item_id: str) -> Optional[InboxItem]:
        return next((i for i in self.inbox_items if i.id == item_id), None)

    def get_project(self, project_id: str) -> Optional[Project]:
        return selectors.resolve_project(self._snapshot, project_id)

    def get_context(self, context_id: str) -> Optional[Context]:
        return selectors.resolve_context(self._snapshot, context_id)

    def get_next_action(self, action_id: str) -> Optional[NextAction]:
        return next((a for a in self.next_actions if a.id == action_id), None)

    # --- Derived values ---

    def project_progress(self, project_id: str) -> float:
        """Displayed progress of a project (0 for an unknown id)."""
        project = self.get_project(project_id)
        if project is None:
            return 0.0
        return selectors.project_progress(project, self.next_actions)

    def project_action_counts(self, project_id: str) -> Tuple[int, int]:
        """``(active, completed)`` next actions of a project."""
        return selectors.project_action_counts(self.next_actions, project_id)

    def filter_next_actions(
        self,
        context_id: Optional[str] = None,
        project_id: Optional[str] = None,
        show_completed: bool = False,
    ) -> List[NextAction]:
        return selectors.filter_next_actions(
            self.next_actions, context_id, project_id, show_completed
        )

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Mark the state ready for interaction.

        Called once after persisted data has been hydrated.
        """
        if self.is_ready:
            return
        self.is_ready = True
        await self.bus.publish(events.TOPIC_STORE_READY, {})

    def set_loading(self, loading: bool) -> None:
        self._snapshot = self._snapshot.model_copy(update={"loading": loading})

    async def hydrate(
        self,
        inbox_items: Iterable[InboxItem] = (),
        projects: Iterable[Project] = (),
        next_actions: Iterable[NextAction] = (),
        contexts: Optional[Iterable[Context]] = None,
    ) -> None:
        """Replace the collections with data read from durable storage.

        Contexts fall back to the seeds when none are supplied. Publishes
        ``state.loaded`` rather than ``state.changed`` so the data just read is
        not written straight back.
        """
        contexts = tuple(contexts) if contexts else self._seed_contexts
        self._snapshot = self._snapshot.model_copy(update={
            "inbox_items": tuple(inbox_items),
            "projects": tuple(projects),
            "next_actions": tuple(next_actions),
            "contexts": contexts,
        })
        await self.bus.publish(
            events.TOPIC_STATE_LOADED,
            events.create_state_loaded_event(self._snapshot),
        )

    async def _commit(self, operation: str, collections: Iterable[str], **changes: Any) -> None:
        """Swap in the next snapshot, then announce it."""
        self._snapshot = self._snapshot.model_copy(update=changes)
        collections = list(collections)
        logger.debug(f"{operation}: updated {', '.join(collections)}")
        await self.bus.publish(
            events.TOPIC_STATE_CHANGED,
            events.create_state_changed_event(operation, collections, self._snapshot),
        )

    # --- Inbox ---

    async def add_inbox_item(self, title: str, description: str = "") -> str:
        """Capture a new inbox item and return its id.

        Raises:
            ValidationRejected: If the title is empty after trimming
        """
        item = InboxItem(title=_require_text(title, "title"), description=description or "")
        await self._commit(
            "add_inbox_item", [INBOX],
            inbox_items=self.inbox_items + (item,),
        )
        return item.id

    async def remove_inbox_item(self, item_id: str) -> None:
        remaining = tuple(i for i in self.inbox_items if i.id != item_id)
        if len(remaining) == len(self.inbox_items):
            return
        await self._commit("remove_inbox_item", [INBOX], inbox_items=remaining)

    async def process_inbox_item(
        self,
        item_id: str,
        disposition: Disposition | str = Disposition.NEXT_ACTION,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
        context_id: Optional[str] = None,
        new_project_name: Optional[str] = None,
    ) -> Optional[ProcessResult]:
        """Turn an inbox item into a next action or a project, or discard it.

        The derived entities and the removal of the item land in one
        snapshot, so the item can never be both processed and still in the
        inbox. Title and description default to the item's own.

        Args:
            item_id: Inbox item to process
            disposition: NEXT_ACTION, PROJECT or DISCARD
            title: Action title or project name override
            description: Description override
            project_id: Existing project for the new action
            context_id: Context for the new action
            new_project_name: Create a project with this name and link the
                new action to it (takes precedence over ``project_id``)

        Returns:
            Ids of the created entities, or None if the item does not exist

        Raises:
            ValidationRejected: If the resulting title or project name is empty
        """
        item = self.get_inbox_item(item_id)
        if item is None:
            return None
        disposition = Disposition(disposition)
        remaining = tuple(i for i in self.inbox_items if i.id != item_id)
        text = (description if description is not None else item.description).strip()

        if disposition is Disposition.DISCARD:
            await self._commit("process_inbox_item", [INBOX], inbox_items=remaining)
            return ProcessResult(disposition=disposition)

        if disposition is Disposition.PROJECT:
            project = Project(
                name=_require_text(title if title is not None else item.title, "name"),
                description=text,
            )
            await self._commit(
                "process_inbox_item", [INBOX, PROJECTS],
                inbox_items=remaining,
                projects=self.projects + (project,),
            )
            return ProcessResult(disposition=disposition, project_id=project.id)

        action_title = _require_text(title if title is not None else item.title, "title")
        projects = self.projects
        touched = [INBOX, NEXT_ACTIONS]
        if new_project_name is not None:
            project = Project(name=_require_text(new_project_name, "name"))
            projects = projects + (project,)
            project_id = project.id
            touched.append(PROJECTS)

        action = NextAction(
            title=action_title,
            description=text,
            project_id=project_id,
            context_id=context_id,
        )
        await self._commit(
            "process_inbox_item", touched,
            inbox_items=remaining,
            projects=projects,
            next_actions=self.next_actions + (action,),
        )
        return ProcessResult(
            disposition=disposition, next_action_id=action.id, project_id=project_id
        )

    # --- Projects ---

    async def add_project(self, name: str, description: str = "") -> str:
        """Create a project and return its id so actions can be linked to it."""
        project = Project(name=_require_text(name, "name"), description=description or "")
        await self._commit("add_project", [PROJECTS], projects=self.projects + (project,))
        return project.id

    async def update_project(self, project_id: str, **changes: Any) -> None:
        """Merge ``changes`` into a project.

        Raises:
            InvalidUpdate: If ``changes`` names ``id`` or an unknown field
            ValidationRejected: If ``name`` is changed to an empty value
        """
        _check_update_fields(Project, "project", changes)
        if "name" in changes:
            changes["name"] = _require_text(changes["name"], "name")
        index = _index_of(self.projects, project_id)
        if index is None:
            return
        updated = _merge(self.projects[index], changes)
        await self._commit(
            "update_project", [PROJECTS],
            projects=_replace_at(self.projects, index, updated),
        )

    async def update_project_progress(
        self,
        project_id: str,
        progress: Optional[float],
        use_manual_progress: bool = True,
    ) -> None:
        """Store a manual progress value, clamped into [0, 100]."""
        index = _index_of(self.projects, project_id)
        if index is None:
            return
        updated = _merge(self.projects[index], {
            "manual_progress": clamp_progress(progress),
            "use_manual_progress": use_manual_progress,
        })
        await self._commit(
            "update_project_progress", [PROJECTS],
            projects=_replace_at(self.projects, index, updated),
        )

    async def delete_project(self, project_id: str) -> None:
        """Delete a project and every next action that refers to it.

        Actions are removed by ``project_id`` even when the project itself is
        already gone, so dangling references can still be cleared.
        """
        projects = tuple(p for p in self.projects if p.id != project_id)
        next_actions = tuple(a for a in self.next_actions if a.project_id != project_id)
        touched = [PROJECTS] if len(projects) != len(self.projects) else []
        if len(next_actions) != len(self.next_actions):
            touched.append(NEXT_ACTIONS)
            logger.info(
                f"Deleting project {project_id} with "
                f"{len(self.next_actions) - len(next_actions)} next action(s)"
            )
        if not touched:
            return
        await self._commit(
            "delete_project", touched,
            projects=projects,
            next_actions=next_actions,
        )

    # --- Contexts ---

    async def add_context(self, name: str, color: str) -> str:
        context = Context(name=_require_text(name, "name"), color=color)
        await self._commit("add_context", [CONTEXTS], contexts=self.contexts + (context,))
        return context.id

    # --- Next actions ---

    async def add_next_action(
        self,
        title: str,
        description: str = "",
        project_id: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> str:
        """Create an active next action and return its id.

        ``project_id`` and ``context_id`` are stored as given; they are not
        checked against existing projects or contexts.
        """
        action = NextAction(
            title=_require_text(title, "title"),
            description=description or "",
            project_id=project_id,
            context_id=context_id,
        )
        await self._commit(
            "add_next_action", [NEXT_ACTIONS],
            next_actions=self.next_actions + (action,),
        )
        return action.id

    async def update_next_action(self, action_id: str, **changes: Any) -> None:
        """Merge ``changes`` into a next action.

        ``completed_at`` follows ``completed``: clearing ``completed`` clears
        the timestamp, setting it without a timestamp stamps the current time.

        Raises:
            InvalidUpdate: If ``changes`` names ``id`` or an unknown field
            ValidationRejected: If ``title`` is changed to an empty value
        """
        _check_update_fields(NextAction, "next action", changes)
        if "title" in changes:
            changes["title"] = _require_text(changes["title"], "title")
        index = _index_of(self.next_actions, action_id)
        if index is None:
            return
        current = self.next_actions[index]
        if changes.get("completed") and changes.get("completed_at") is None:
            # keep the original timestamp of an already-completed action
            changes["completed_at"] = current.completed_at
        updated = _merge(current, changes)
        await self._commit(
            "update_next_action", [NEXT_ACTIONS],
            next_actions=_replace_at(self.next_actions, index, updated),
        )

    async def complete_next_action(self, action_id: str) -> None:
        """Move an active action to completed.

        Completion is one-way; calling this on an already-completed action
        leaves it (and its ``completed_at``) untouched.
        """
        index = _index_of(self.next_actions, action_id)
        if index is None:
            return
        action = self.next_actions[index]
        if action.completed:
            return
        updated = _merge(action, {"completed": True, "completed_at": utcnow()})
        await self._commit(
            "complete_next_action", [NEXT_ACTIONS],
            next_actions=_replace_at(self.next_actions, index, updated),
        )

    async def delete_next_action(self, action_id: str) -> None:
        remaining = tuple(a for a in self.next_actions if a.id != action_id)
        if len(remaining) == len(self.next_actions):
            return
        await self._commit("delete_next_action", [NEXT_ACTIONS], next_actions=remaining)

    async def delete_completed_actions(self) -> int:
        """Remove every completed action in one batch.

        Returns:
            Number of actions removed
        """
        remaining = tuple(a for a in self.next_actions if not a.completed)
        removed = len(self.next_actions) - len(remaining)
        if removed:
            await self._commit(
                "delete_completed_actions", [NEXT_ACTIONS], next_actions=remaining
            )
        return removed
