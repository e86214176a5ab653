"""Entities of the capture → process → engage workflow.

All entities are frozen pydantic models. The store never mutates an entity in
place: every change builds a validated replacement, so the model validators
below hold for every snapshot the store ever exposes.

Field names serialize in camelCase (``createdAt``, ``manualProgress`` ...),
which is the layout written to durable storage.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PROGRESS_MIN = 0.0
PROGRESS_MAX = 100.0


def new_id() -> str:
    """Collision-resistant opaque identifier."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_progress(value: Optional[float]) -> float:
    """Clamp into [0, 100]; a missing value counts as 0."""
    if value is None:
        return PROGRESS_MIN
    return max(PROGRESS_MIN, min(PROGRESS_MAX, float(value)))


class GTDModel(BaseModel):
    """Base for all persisted entities."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class InboxItem(GTDModel):
    """A captured thought waiting to be processed."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Project(GTDModel):
    """A multi-step outcome tracked through its next actions."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    completed: bool = False
    manual_progress: float = 0.0
    use_manual_progress: bool = False

    @field_validator("manual_progress", mode="before")
    @classmethod
    def _clamp_manual_progress(cls, value: Any) -> float:
        return clamp_progress(value)


class Context(GTDModel):
    """A situational tag (location or tool) used to filter next actions."""

    id: str = Field(default_factory=new_id)
    name: str
    color: str = "#6B7280"


class NextAction(GTDModel):
    """The smallest concrete, doable step toward an outcome.

    ``project_id`` and ``context_id`` are weak references: they are stored as
    given and may point at entities that no longer exist.
    """

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    project_id: Optional[str] = None
    context_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed: bool = False
    completed_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _sync_completed_at(cls, data: Any) -> Any:
        # completed_at is set if and only if completed is true
        if not isinstance(data, dict):
            return data
        data = dict(data)
        stamp_key = "completedAt" if "completedAt" in data else "completed_at"
        if not data.get("completed"):
            data[stamp_key] = None
        elif data.get(stamp_key) is None:
            data[stamp_key] = utcnow()
        return data

    @property
    def is_active(self) -> bool:
        return not self.completed


DEFAULT_CONTEXTS: Tuple[Context, ...] = (
    Context(id="1", name="@computer", color="#3B82F6"),
    Context(id="2", name="@home", color="#10B981"),
    Context(id="3", name="@errands", color="#F59E0B"),
    Context(id="4", name="@phone", color="#EF4444"),
)


def seed_contexts(seeds: Optional[Iterable[Any]] = None) -> Tuple[Context, ...]:
    """Build the startup contexts from config seeds (objects or dicts)."""
    if seeds is None:
        return DEFAULT_CONTEXTS
    contexts = []
    for seed in seeds:
        raw = seed.model_dump() if isinstance(seed, BaseModel) else dict(seed)
        contexts.append(Context.model_validate(raw))
    return tuple(contexts)


class GTDSnapshot(BaseModel):
    """One complete, immutable state of the store."""

    model_config = ConfigDict(frozen=True)

    inbox_items: Tuple[InboxItem, ...] = ()
    projects: Tuple[Project, ...] = ()
    contexts: Tuple[Context, ...] = DEFAULT_CONTEXTS
    next_actions: Tuple[NextAction, ...] = ()
    loading: bool = False


class Disposition(str, Enum):
    """What processing turns an inbox item into."""

    NEXT_ACTION = "next_action"
    PROJECT = "project"
    DISCARD = "discard"


class ProcessResult(BaseModel):
    """Ids created while processing an inbox item."""

    model_config = ConfigDict(frozen=True)

    disposition: Disposition
    next_action_id: Optional[str] = None
    project_id: Optional[str] = None
