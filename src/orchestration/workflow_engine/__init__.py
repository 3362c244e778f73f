"""
Workflow engine components.

- steps: definition, state and history models
- dispatcher: action types and the pure state reducer
- context: per-invocation hook context
- executors: sync/background hook execution
- core: the orchestrating engine
"""

from __future__ import annotations

from .steps import (
    EngineStatus,
    HistoryEntry,
    Progress,
    Step,
    WorkflowDefinition,
    WorkflowState,
    compute_progress,
)

from .context import ContextBuilder, WorkflowContext

from .core import WorkflowEngine

from .executors import PENDING, BackgroundHookExecutor, HookExecutor

__all__ = [
    # Models
    "EngineStatus",
    "HistoryEntry",
    "Progress",
    "Step",
    "WorkflowDefinition",
    "WorkflowState",
    "compute_progress",

    # Context
    "ContextBuilder",
    "WorkflowContext",

    # Engine
    "WorkflowEngine",

    # Executors
    "PENDING",
    "BackgroundHookExecutor",
    "HookExecutor",
]
