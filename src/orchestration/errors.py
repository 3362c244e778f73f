"""Exception types raised by the workflow registry and engine."""
from __future__ import annotations

from typing import Iterable, List


class WorkflowError(Exception):
    """Base class for workflow orchestration errors."""


class DefinitionError(WorkflowError):
    """Raised when a workflow definition fails validation.

    Every violation found is collected into ``violations`` so the caller can
    fix the definition in one pass.
    """

    def __init__(self, workflow_id: str, violations: Iterable[str]):
        self.workflow_id = workflow_id
        self.violations: List[str] = list(violations)
        summary = "; ".join(self.violations)
        super().__init__(f"Invalid workflow definition '{workflow_id}': {summary}")


class NotFoundError(WorkflowError):
    """Raised when a workflow id is not registered."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class ConflictError(WorkflowError):
    """Raised when starting a workflow while another one is active."""

    def __init__(self, requested_id: str, active_id: str):
        self.requested_id = requested_id
        self.active_id = active_id
        super().__init__(
            f"Cannot start workflow {requested_id}: workflow {active_id} is already active"
        )
