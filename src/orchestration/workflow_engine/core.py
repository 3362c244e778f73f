"""
Core workflow engine.

This module contains the orchestrator that owns the single active workflow:
it computes step eligibility, activates steps (navigation call-out or hook),
records completions through the dispatcher and emits lifecycle events.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..errors import ConflictError, NotFoundError
from ..events import EventBus, EventType, WorkflowEvent
from ..navigation import Navigator, resolve_params
from .context import ContextBindings, ContextBuilder, WorkflowContext
from .dispatcher import (
    AppendHistory,
    LoadState,
    MarkStepCompleted,
    MergeData,
    ResetWorkflow,
    SetCurrentStep,
    SetData,
    SetPaused,
    StartWorkflow,
    reduce,
)
from .executors import PENDING, BackgroundHookExecutor, HookExecutor
from .steps import (
    EngineStatus,
    HistoryEntry,
    Progress,
    Step,
    WorkflowDefinition,
    WorkflowState,
    compute_progress,
    utcnow,
)

if TYPE_CHECKING:
    from ..registry import WorkflowRegistry
    from ..state_manager import PersistenceAdapter

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Dependency-aware step scheduler for one active workflow at a time.

    Every public operation runs under a single reentrant lock, so concurrent
    callers are serialized and a hook that calls back into the engine on the
    same thread nests inside the current transition.

    Hook failures never roll back state that was already committed. The
    engine finishes the transition and then re-raises the first hook error to
    the caller of the operation that triggered it.
    """

    def __init__(
        self,
        registry: "WorkflowRegistry",
        navigate: Optional[Navigator] = None,
        event_bus: Optional[EventBus] = None,
        hook_executor: Optional[HookExecutor] = None,
        persistence: Optional["PersistenceAdapter"] = None,
    ):
        """Initialize workflow engine.

        Args:
            registry: Registry the engine resolves workflow ids against
            navigate: External navigation function for interactive steps
            event_bus: Event bus for lifecycle notifications
            hook_executor: Strategy for running hooks that return awaitables
            persistence: State record adapter used by snapshot/restore
        """
        # Import here to avoid circular imports
        from ..state_manager import PersistenceAdapter

        self.registry = registry
        self.navigate = navigate
        self.events = event_bus or EventBus()
        self.hooks = hook_executor or BackgroundHookExecutor()
        self.persistence = persistence or PersistenceAdapter(registry)

        self._state = WorkflowState()
        self._lock = RLock()
        self._generation = 0
        self._initial_data: Dict[str, Any] = {}
        self._deferred_step: Optional[str] = None
        self._contexts = ContextBuilder(
            ContextBindings(
                read_data=lambda: self._state.data,
                set_data=self._bound_set_data,
                complete_step=self._bound_complete_step,
                skip_to_step=self._bound_skip_to_step,
                cancel=self._bound_cancel,
                restart=self._bound_restart,
                is_current_run=self._is_current_run,
            )
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, workflow_id: str, initial_data: Optional[Dict[str, Any]] = None) -> None:
        """Start a registered workflow.

        Args:
            workflow_id: Workflow ID to start
            initial_data: Initial contents of the workflow data mapping

        Raises:
            NotFoundError: If the workflow is not registered
            ConflictError: If another workflow is already active
        """
        with self._lock:
            definition = self.registry.get(workflow_id)
            if definition is None:
                raise NotFoundError(workflow_id)
            if self._state.is_active:
                raise ConflictError(workflow_id, self._state.workflow_id)

            self._generation += 1
            self._initial_data = dict(initial_data or {})
            self._deferred_step = None
            self._dispatch(StartWorkflow(definition, self._initial_data))
            logger.info(f"Started workflow: {definition.name} ({definition.id})")
            self._emit(EventType.WORKFLOW_STARTED)

            errors: List[Exception] = []
            generation = self._generation
            if definition.on_start is not None:
                self._call_hook(definition.on_start, None, f"{definition.id}.on_start", errors)
            if self._is_current_run(generation) and self._state.current_step_id is None:
                self._scan(errors)
            self._raise_first(errors)

    def complete_step(self, step_id: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """Mark the current step completed and advance.

        Calls for a step that is not current, or with no active workflow, are
        ignored so that late completion signals are harmless.

        Args:
            step_id: Step to complete
            data: Values merged into the workflow data mapping

        Returns:
            True if the completion was applied
        """
        with self._lock:
            return self._complete_step_locked(step_id, data)

    def skip_to_step(self, step_id: str) -> bool:
        """Activate any not-yet-completed step, bypassing dependency checks.

        Steps in between are not marked completed.

        Returns:
            True if the step was activated (or its activation deferred)
        """
        with self._lock:
            state = self._state
            if not state.is_active:
                logger.debug(f"Ignoring skip to {step_id}: no active workflow")
                return False
            step = state.definition.get_step(step_id)
            if step is None:
                logger.warning(f"Ignoring skip to unknown step {step_id} in {state.workflow_id}")
                return False
            if state.is_step_completed(step_id) or state.current_step_id == step_id:
                logger.debug(f"Ignoring skip to {step_id}: already current or completed")
                return False

            previous = state.current_step_id
            # A step whose activation is still deferred never started.
            if previous is not None and previous != self._deferred_step:
                self._emit(EventType.STEP_SKIPPED, previous, {"target": step_id})
            logger.info(f"Skipping to step {step_id} in {state.workflow_id}")
            self._dispatch(SetCurrentStep(step_id))

            errors: List[Exception] = []
            self._activate(step, errors)
            self._raise_first(errors)
            return True

    def pause(self) -> bool:
        """Pause automatic step activation.

        Returns:
            True if the workflow was paused
        """
        with self._lock:
            state = self._state
            if not state.is_active or state.paused:
                return False
            if not state.definition.pausable:
                logger.warning(f"Workflow {state.workflow_id} is not pausable")
                return False
            self._dispatch(SetPaused(True))
            logger.info(f"Paused workflow {state.workflow_id}")
            self._emit(EventType.WORKFLOW_PAUSED, state.current_step_id)
            return True

    def resume(self) -> bool:
        """Resume a paused workflow and run any deferred activation once.

        Returns:
            True if the workflow was resumed
        """
        with self._lock:
            state = self._state
            if not state.is_active or not state.paused:
                return False
            self._dispatch(SetPaused(False))
            logger.info(f"Resumed workflow {state.workflow_id}")
            self._emit(EventType.WORKFLOW_RESUMED, self._state.current_step_id)

            errors: List[Exception] = []
            deferred, self._deferred_step = self._deferred_step, None
            current = self._state.current_step
            if (
                deferred is not None
                and current is not None
                and current.id == deferred
                and not self._state.is_step_completed(deferred)
            ):
                self._run_activation(current, errors)
            self._raise_first(errors)
            return True

    def cancel(self) -> bool:
        """Cancel the active workflow and return to idle.

        Background hook work is not aborted; contexts of the cancelled run
        report ``is_active() == False`` and their actions become no-ops.

        Returns:
            True if a workflow was cancelled
        """
        with self._lock:
            state = self._state
            if not state.is_active:
                return False

            errors: List[Exception] = []
            generation = self._generation
            definition = state.definition
            if definition.on_cancel is not None:
                self._call_hook(
                    definition.on_cancel, state.current_step, f"{definition.id}.on_cancel", errors
                )
            if self._is_current_run(generation):
                self._emit(EventType.WORKFLOW_CANCELLED, self._state.current_step_id)
                self._reset()
                logger.info(f"Cancelled workflow {definition.id}")
            self._raise_first(errors)
            return True

    def stop(self) -> bool:
        """Alias of :meth:`cancel`."""
        return self.cancel()

    def restart(self, data: Optional[Dict[str, Any]] = None) -> bool:
        """Cancel and start the active workflow again from scratch.

        Args:
            data: Initial data for the new run (defaults to the previous run's)

        Returns:
            True if a workflow was restarted
        """
        with self._lock:
            if not self._state.is_active:
                return False
            workflow_id = self._state.workflow_id
            initial = dict(self._initial_data) if data is None else data

            errors: List[Exception] = []
            try:
                self.cancel()
            except Exception as e:
                errors.append(e)
            try:
                self.start(workflow_id, initial)
            except Exception as e:
                errors.append(e)
            self._raise_first(errors)
            return True

    def set_data(self, key: str, value: Any) -> bool:
        """Store a value in the active workflow's data mapping."""
        with self._lock:
            if not self._state.is_active:
                return False
            self._dispatch(SetData(key, value))
            return True

    def get_state(self) -> WorkflowState:
        return self._state

    def get_status(self) -> EngineStatus:
        state = self._state
        if not state.is_active:
            return EngineStatus.IDLE
        if state.paused:
            return EngineStatus.PAUSED
        if state.is_stalled():
            return EngineStatus.STALLED
        return EngineStatus.RUNNING

    def get_progress(self, definition: Optional[WorkflowDefinition] = None) -> Progress:
        """Get completion counts for a definition.

        Args:
            definition: Definition to report on (defaults to the active one)

        Returns:
            Progress; counts are zero for a definition that is not active
        """
        state = self._state
        if definition is None:
            definition = state.definition
        if definition is None:
            return Progress(completed=0, total=0, required_completed=0, required_total=0, percentage=0)
        completion = state.step_completion if state.workflow_id == definition.id else {}
        return compute_progress(definition, completion)

    def snapshot(self) -> Optional[Dict[str, Any]]:
        """Serialize the active workflow state, or None when idle."""
        with self._lock:
            if not self._state.is_active:
                return None
            return self.persistence.serialize(self._state)

    def restore(self, record: Dict[str, Any], activate: bool = True) -> WorkflowState:
        """Load a persisted state record into an idle engine.

        The restored current step is activated again (hooks are expected to be
        idempotent). A paused record defers that activation until resume().

        Args:
            record: Record produced by :meth:`snapshot`
            activate: Re-run activation of the restored current step

        Returns:
            The restored state

        Raises:
            ConflictError: If a workflow is already active
            NotFoundError: If the record's workflow is not registered
        """
        with self._lock:
            if self._state.is_active:
                raise ConflictError(str(record.get("workflowId")), self._state.workflow_id)
            state = self.persistence.deserialize(record)
            if not state.is_active:
                return state

            self._generation += 1
            self._initial_data = dict(state.data)
            self._deferred_step = None
            self._dispatch(LoadState(state))
            logger.info(f"Restored workflow {state.workflow_id} at step {state.current_step_id}")

            errors: List[Exception] = []
            if activate:
                current = state.current_step
                if current is not None and not state.is_step_completed(current.id):
                    self._activate(current, errors)
                else:
                    self._scan(errors)
            self._raise_first(errors)
            return self._state

    # ------------------------------------------------------------------
    # Transitions (callers hold the lock)
    # ------------------------------------------------------------------

    def _dispatch(self, action: Any) -> None:
        self._state = reduce(self._state, action)

    def _complete_step_locked(self, step_id: str, data: Optional[Dict[str, Any]]) -> bool:
        state = self._state
        if not state.is_active or state.current_step_id != step_id:
            logger.debug(f"Ignoring completion of {step_id}: not the current step")
            return False
        if state.is_step_completed(step_id):
            logger.debug(f"Ignoring completion of {step_id}: already completed")
            return False

        errors: List[Exception] = []
        self._complete(step_id, data, errors)
        self._raise_first(errors)
        return True

    def _complete(
        self,
        step_id: str,
        data: Optional[Dict[str, Any]],
        errors: List[Exception],
        auto: bool = False,
    ) -> None:
        definition = self._state.definition
        step = definition.get_step(step_id)
        payload = dict(data) if data else None

        if payload:
            self._dispatch(MergeData(payload))
        self._dispatch(MarkStepCompleted(step_id))
        self._dispatch(
            AppendHistory(
                HistoryEntry(
                    workflow_id=definition.id,
                    step_id=step_id,
                    completed_at=utcnow(),
                    data=payload,
                )
            )
        )
        logger.info(f"Completed step {step_id} in {definition.id}")
        event_data = {"auto": True} if auto else (dict(payload) if payload else None)
        self._emit(EventType.STEP_COMPLETED, step_id, event_data)

        generation = self._generation
        if step.on_complete is not None:
            self._call_hook(step.on_complete, step, f"{step_id}.on_complete", errors)
        if not self._is_current_run(generation) or self._state.current_step_id != step_id:
            # The hook moved the workflow on by itself.
            return

        if self._state.required_steps_completed():
            self._finish(errors)
        else:
            self._scan(errors)

    def _finish(self, errors: List[Exception]) -> None:
        definition = self._state.definition
        generation = self._generation
        logger.info(f"Workflow {definition.id} completed")
        self._emit(EventType.WORKFLOW_COMPLETED, data={"history": len(self._state.history)})
        if definition.on_complete is not None:
            self._call_hook(definition.on_complete, None, f"{definition.id}.on_complete", errors)
        if self._is_current_run(generation):
            self._reset()

    def _reset(self) -> None:
        self._dispatch(ResetWorkflow())
        self._generation += 1
        self._deferred_step = None

    def _scan(self, errors: List[Exception]) -> None:
        """Activate the first eligible step in declaration order."""
        state = self._state
        for step in state.definition.steps:
            if state.is_step_completed(step.id):
                continue
            if all(state.is_step_completed(dep) for dep in step.dependencies):
                self._dispatch(SetCurrentStep(step.id))
                self._activate(step, errors)
                return

        self._dispatch(SetCurrentStep(None))
        if not self._state.required_steps_completed():
            logger.warning(
                f"Workflow {state.workflow_id} stalled: no eligible step and required steps remain"
            )

    def _activate(self, step: Step, errors: List[Exception]) -> None:
        if self._state.paused:
            self._deferred_step = step.id
            logger.info(f"Deferred activation of {step.id} while paused")
            return
        self._deferred_step = None
        self._run_activation(step, errors)

    def _run_activation(self, step: Step, errors: List[Exception]) -> None:
        generation = self._generation
        logger.debug(f"Activating step {step.id}")
        self._emit(EventType.STEP_STARTED, step.id)
        if not self._is_current_step(generation, step.id):
            return

        if step.on_activate is not None:
            self._call_hook(step.on_activate, step, f"{step.id}.on_activate", errors)
            if not self._is_current_step(generation, step.id):
                return

        if step.completion_condition is not None:
            satisfied = self._call_hook(
                step.completion_condition,
                step,
                f"{step.id}.completion_condition",
                errors,
                on_result=lambda value: self._on_condition_result(generation, step.id, value),
            )
            if not self._is_current_step(generation, step.id):
                return
            if satisfied is not PENDING and bool(satisfied):
                logger.info(f"Step {step.id} condition already satisfied")
                self._complete(step.id, None, errors, auto=True)
                return

        if step.interactive:
            self._navigate_to(step)

    def _navigate_to(self, step: Step) -> None:
        if self.navigate is None:
            logger.warning(f"No navigator configured for interactive step {step.id}")
            return
        params = resolve_params(step.params, self._state.data)
        try:
            self.navigate(step.screen, params)
        except Exception as e:
            logger.error(f"Navigation to {step.screen} failed: {e}")

    def _on_condition_result(self, generation: int, step_id: str, value: Any) -> None:
        if not value:
            return
        with self._lock:
            if not self._is_current_step(generation, step_id) or self._state.is_step_completed(step_id):
                return
            errors: List[Exception] = []
            self._complete(step_id, None, errors, auto=True)
            self._raise_first(errors)

    # ------------------------------------------------------------------
    # Hooks, contexts and events
    # ------------------------------------------------------------------

    def _context(self, step: Optional[Step]) -> WorkflowContext:
        return self._contexts.build(self._state.definition, step, self._generation)

    def _call_hook(
        self,
        hook: Callable[..., Any],
        step: Optional[Step],
        label: str,
        errors: List[Exception],
        on_result: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        try:
            return self.hooks.call(hook, self._context(step), label, on_result)
        except Exception as e:
            logger.error(f"Hook {label} failed: {e}")
            errors.append(e)
            return None

    def _emit(
        self,
        event_type: EventType,
        step_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.events.emit(
            WorkflowEvent(
                type=event_type,
                workflow_id=self._state.workflow_id,
                step_id=step_id,
                data=data,
            )
        )

    @staticmethod
    def _raise_first(errors: List[Exception]) -> None:
        if errors:
            raise errors[0]

    def _is_current_run(self, generation: int) -> bool:
        return generation == self._generation and self._state.is_active

    def _is_current_step(self, generation: int, step_id: str) -> bool:
        return self._is_current_run(generation) and self._state.current_step_id == step_id

    # Context bindings: each one ignores calls from a run that has ended.

    def _bound_set_data(self, generation: int, key: str, value: Any) -> bool:
        with self._lock:
            if not self._is_current_run(generation):
                return False
            self._dispatch(SetData(key, value))
            return True

    def _bound_complete_step(
        self, generation: int, step_id: str, data: Optional[Dict[str, Any]]
    ) -> bool:
        with self._lock:
            if not self._is_current_run(generation):
                return False
            return self._complete_step_locked(step_id, data)

    def _bound_skip_to_step(self, generation: int, step_id: str) -> bool:
        with self._lock:
            if not self._is_current_run(generation):
                return False
            return self.skip_to_step(step_id)

    def _bound_cancel(self, generation: int) -> bool:
        with self._lock:
            if not self._is_current_run(generation):
                return False
            return self.cancel()

    def _bound_restart(self, generation: int) -> bool:
        with self._lock:
            if not self._is_current_run(generation):
                return False
            return self.restart()
