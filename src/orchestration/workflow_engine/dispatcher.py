"""
State transitions for the workflow engine.

Every change to ``WorkflowState`` is expressed as an action object and applied
through :func:`reduce`, a pure function returning a new state. The engine is
the only caller and invokes it under its transition lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Type

from .steps import HistoryEntry, WorkflowDefinition, WorkflowState


@dataclass(frozen=True)
class StartWorkflow:
    definition: WorkflowDefinition
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResetWorkflow:
    """Fold back to idle, dropping definition, data and history."""


@dataclass(frozen=True)
class SetCurrentStep:
    step_id: Optional[str]


@dataclass(frozen=True)
class MarkStepCompleted:
    step_id: str


@dataclass(frozen=True)
class MergeData:
    data: Dict[str, Any]


@dataclass(frozen=True)
class SetData:
    key: str
    value: Any


@dataclass(frozen=True)
class SetPaused:
    paused: bool


@dataclass(frozen=True)
class AppendHistory:
    entry: HistoryEntry


@dataclass(frozen=True)
class LoadState:
    """Replace the whole state, used when restoring a persisted record."""

    state: WorkflowState


def _start(state: WorkflowState, action: StartWorkflow) -> WorkflowState:
    return WorkflowState(
        definition=action.definition,
        step_completion={step.id: False for step in action.definition.steps},
        data=dict(action.data),
    )


def _reset(state: WorkflowState, action: ResetWorkflow) -> WorkflowState:
    return WorkflowState()


def _set_current(state: WorkflowState, action: SetCurrentStep) -> WorkflowState:
    return replace(state, current_step_id=action.step_id)


def _mark_completed(state: WorkflowState, action: MarkStepCompleted) -> WorkflowState:
    if action.step_id not in state.step_completion or state.step_completion[action.step_id]:
        return state
    completion = dict(state.step_completion)
    completion[action.step_id] = True
    return replace(state, step_completion=completion)


def _merge_data(state: WorkflowState, action: MergeData) -> WorkflowState:
    if not action.data:
        return state
    data = dict(state.data)
    data.update(action.data)
    return replace(state, data=data)


def _set_data(state: WorkflowState, action: SetData) -> WorkflowState:
    data = dict(state.data)
    data[action.key] = action.value
    return replace(state, data=data)


def _set_paused(state: WorkflowState, action: SetPaused) -> WorkflowState:
    return replace(state, paused=action.paused)


def _append_history(state: WorkflowState, action: AppendHistory) -> WorkflowState:
    return replace(state, history=state.history + (action.entry,))


def _load(state: WorkflowState, action: LoadState) -> WorkflowState:
    return action.state


_REDUCERS: Dict[Type, Callable[[WorkflowState, Any], WorkflowState]] = {
    StartWorkflow: _start,
    ResetWorkflow: _reset,
    SetCurrentStep: _set_current,
    MarkStepCompleted: _mark_completed,
    MergeData: _merge_data,
    SetData: _set_data,
    SetPaused: _set_paused,
    AppendHistory: _append_history,
    LoadState: _load,
}

# Actions that only make sense while a workflow is active.
_REQUIRES_ACTIVE = (
    SetCurrentStep,
    MarkStepCompleted,
    MergeData,
    SetData,
    SetPaused,
    AppendHistory,
)


def reduce(state: WorkflowState, action: Any) -> WorkflowState:
    """Apply ``action`` to ``state`` and return the resulting state.

    Args:
        state: Current state (left untouched)
        action: One of the action types defined in this module

    Returns:
        New state, or ``state`` itself when the action changes nothing

    Raises:
        TypeError: If the action type is unknown
    """
    handler = _REDUCERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unknown workflow action: {action!r}")
    if isinstance(action, _REQUIRES_ACTIVE) and not state.is_active:
        return state
    return handler(state, action)
