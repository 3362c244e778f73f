"""
Workflow step models and data structures.

This module defines the core data models for workflow definitions, steps,
history entries, progress reporting and the engine state record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Hooks and predicates receive a WorkflowContext. They may return an awaitable,
# in which case the engine schedules it in the background.
Hook = Callable[..., Any]
Predicate = Callable[..., Any]


class EngineStatus(Enum):
    """Lifecycle status of the engine's single workflow slot."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STALLED = "stalled"


class Step(BaseModel):
    """Individual workflow step definition.

    A step is interactive when it carries a ``screen`` reference and headless
    when ``headless`` is set. ``params`` is a navigation parameter template
    whose string values may contain ``{{key}}`` placeholders resolved from the
    workflow data. ``metadata`` is an opaque bag that the engine never reads.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    screen: Optional[str] = None
    required: bool = True
    headless: bool = False
    dependencies: FrozenSet[str] = Field(default_factory=frozenset)
    completion_condition: Optional[Predicate] = None
    on_activate: Optional[Hook] = None
    on_complete: Optional[Hook] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def interactive(self) -> bool:
        """Whether activation navigates to a screen."""
        return not self.headless and self.screen is not None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class WorkflowDefinition(BaseModel):
    """Workflow definition.

    Structural typing is enforced by pydantic on construction; semantic rules
    (unique step ids, resolvable dependencies, step kinds, cycles) are checked
    by the registry so that every violation can be reported at once.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    steps: Tuple[Step, ...]
    skippable: bool = False
    pausable: bool = False
    on_start: Optional[Hook] = None
    on_complete: Optional[Hook] = None
    on_cancel: Optional[Hook] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("steps", mode="before")
    @classmethod
    def coerce_steps(cls, v):
        """Accept any iterable of steps."""
        if v is None:
            return ()
        return tuple(v)

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    @property
    def required_step_ids(self) -> List[str]:
        return [step.id for step in self.steps if step.required]


def utcnow() -> datetime:
    """Timezone-aware current time used for history and event timestamps."""
    return datetime.now(timezone.utc)


def _frozen_mapping(value: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy, detached from whatever mapping the caller still holds."""
    return MappingProxyType(dict(value))


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable record of a step completion.

    ``data`` is copied on construction, so neither the caller nor event
    listeners holding the original payload can rewrite history.
    """

    workflow_id: str
    step_id: str
    completed_at: datetime = field(default_factory=utcnow)
    data: Optional[Mapping[str, Any]] = None

    def __post_init__(self):
        if self.data is not None:
            object.__setattr__(self, "data", _frozen_mapping(self.data))


@dataclass(frozen=True)
class Progress:
    """Completion counts for a workflow definition."""

    completed: int
    total: int
    required_completed: int
    required_total: int
    percentage: int


@dataclass(frozen=True)
class WorkflowState:
    """Canonical engine state.

    Instances are never mutated; the dispatcher produces a new instance for
    every transition. ``step_completion`` always holds one entry per step of
    the active definition. Both mappings are stored as read-only copies, so a
    state handed out by ``get_state()`` cannot be edited behind the
    dispatcher's back.
    """

    definition: Optional[WorkflowDefinition] = None
    current_step_id: Optional[str] = None
    paused: bool = False
    step_completion: Mapping[str, bool] = field(default_factory=dict)
    data: Mapping[str, Any] = field(default_factory=dict)
    history: Tuple[HistoryEntry, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "step_completion", _frozen_mapping(self.step_completion))
        object.__setattr__(self, "data", _frozen_mapping(self.data))

    @property
    def workflow_id(self) -> Optional[str]:
        return self.definition.id if self.definition else None

    @property
    def is_active(self) -> bool:
        return self.definition is not None

    @property
    def current_step(self) -> Optional[Step]:
        if self.definition is None or self.current_step_id is None:
            return None
        return self.definition.get_step(self.current_step_id)

    @property
    def completed_step_ids(self) -> List[str]:
        """Completed step ids in declaration order."""
        return [step_id for step_id, done in self.step_completion.items() if done]

    def is_step_completed(self, step_id: str) -> bool:
        return self.step_completion.get(step_id, False)

    def required_steps_completed(self) -> bool:
        """True when every step flagged ``required`` is completed."""
        if self.definition is None:
            return False
        return all(self.is_step_completed(step_id) for step_id in self.definition.required_step_ids)

    def is_stalled(self) -> bool:
        """Active, no current step and required work still outstanding."""
        return (
            self.is_active
            and self.current_step_id is None
            and not self.required_steps_completed()
        )


def compute_progress(definition: WorkflowDefinition, step_completion: Mapping[str, bool]) -> Progress:
    """Summarize completion of ``definition`` against a completion mapping."""
    total = len(definition.steps)
    completed = sum(1 for step in definition.steps if step_completion.get(step.id, False))
    required = definition.required_step_ids
    required_completed = sum(1 for step_id in required if step_completion.get(step_id, False))
    percentage = round(completed / total * 100) if total else 0
    return Progress(
        completed=completed,
        total=total,
        required_completed=required_completed,
        required_total=len(required),
        percentage=percentage,
    )
