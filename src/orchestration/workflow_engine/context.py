"""
Execution context handed to hooks and completion predicates.

A context is the only channel through which a hook may read or change
orchestration state. It is bound to a single workflow run: once that run ends
(completion, cancellation or restart) ``is_active()`` turns false and the bound
actions do nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .steps import Step, WorkflowDefinition


@dataclass(frozen=True)
class ContextBindings:
    """Engine callbacks a context delegates to.

    Every callback takes the run generation first so the engine can ignore
    calls coming from a run that is no longer active.
    """

    read_data: Callable[[], Mapping[str, Any]]
    set_data: Callable[[int, str, Any], bool]
    complete_step: Callable[[int, str, Optional[Dict[str, Any]]], bool]
    skip_to_step: Callable[[int, str], bool]
    cancel: Callable[[int], bool]
    restart: Callable[[int], bool]
    is_current_run: Callable[[int], bool]


class WorkflowContext:
    """Data accessors and bound engine actions for one hook invocation."""

    def __init__(
        self,
        definition: WorkflowDefinition,
        current_step: Optional[Step],
        generation: int,
        bindings: ContextBindings,
    ):
        self._definition = definition
        self._current_step = current_step
        self._generation = generation
        self._bindings = bindings

    @property
    def definition(self) -> WorkflowDefinition:
        return self._definition

    @property
    def workflow_id(self) -> str:
        return self._definition.id

    @property
    def current_step(self) -> Optional[Step]:
        """Step that was current when the context was built."""
        return self._current_step

    @property
    def data(self) -> Mapping[str, Any]:
        """Read-only view of the workflow data at the time of access."""
        return MappingProxyType(dict(self._bindings.read_data()))

    def get_data(self, key: str, default: Any = None) -> Any:
        return self._bindings.read_data().get(key, default)

    def set_data(self, key: str, value: Any) -> bool:
        """Store a value in the workflow data mapping.

        Returns:
            False if the run this context belongs to has ended
        """
        return self._bindings.set_data(self._generation, key, value)

    def is_active(self) -> bool:
        """Whether the workflow run this context was built for is still active.

        Long-running hooks should check this before mutating shared data.
        """
        return self._bindings.is_current_run(self._generation)

    def complete_step(self, step_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> bool:
        """Complete a step, defaulting to the context's current step."""
        target = step_id if step_id is not None else self._current_id()
        if target is None:
            return False
        return self._bindings.complete_step(self._generation, target, data)

    def skip_to_step(self, step_id: str) -> bool:
        return self._bindings.skip_to_step(self._generation, step_id)

    def cancel_workflow(self) -> bool:
        return self._bindings.cancel(self._generation)

    def restart_workflow(self) -> bool:
        return self._bindings.restart(self._generation)

    def _current_id(self) -> Optional[str]:
        return self._current_step.id if self._current_step is not None else None

    def __repr__(self) -> str:
        return (
            f"WorkflowContext(workflow={self.workflow_id!r}, "
            f"step={self._current_id()!r}, generation={self._generation})"
        )


class ContextBuilder:
    """Builds a WorkflowContext per hook or predicate invocation."""

    def __init__(self, bindings: ContextBindings):
        self._bindings = bindings

    def build(
        self,
        definition: WorkflowDefinition,
        current_step: Optional[Step],
        generation: int,
    ) -> WorkflowContext:
        return WorkflowContext(definition, current_step, generation, self._bindings)
