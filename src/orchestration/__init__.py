"""Workflow orchestration: registry, engine, events and persistence."""

from .errors import ConflictError, DefinitionError, NotFoundError, WorkflowError
from .events import EventBus, EventType, WorkflowEvent
from .navigation import Navigator, resolve_params
from .registry import WorkflowRegistry, validate_definition
from .state_manager import (
    InMemoryStateStore,
    PersistedState,
    PersistenceAdapter,
    WorkflowStateStore,
)
from .templates import DeviceAuthorizationWorkflow, OnboardingWorkflow, get_workflow_template
from .workflow_engine import (
    BackgroundHookExecutor,
    EngineStatus,
    HistoryEntry,
    Progress,
    Step,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowEngine,
    WorkflowState,
)

__all__ = [
    "BackgroundHookExecutor",
    "ConflictError",
    "DefinitionError",
    "DeviceAuthorizationWorkflow",
    "EngineStatus",
    "EventBus",
    "EventType",
    "HistoryEntry",
    "InMemoryStateStore",
    "Navigator",
    "NotFoundError",
    # Templates
    "OnboardingWorkflow",
    "PersistedState",
    # Persistence
    "PersistenceAdapter",
    "Progress",
    "Step",
    "WorkflowContext",
    "WorkflowDefinition",
    # Core engine classes
    "WorkflowEngine",
    "WorkflowError",
    "WorkflowEvent",
    "WorkflowRegistry",
    "WorkflowState",
    "WorkflowStateStore",
    "get_workflow_template",
    "resolve_params",
    "validate_definition",
]
