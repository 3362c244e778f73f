"""Workflow definition registry with eager validation."""
from __future__ import annotations

import logging
from collections import Counter
from threading import Lock
from typing import Dict, List, Optional

import networkx as nx

from .errors import DefinitionError
from .workflow_engine.steps import WorkflowDefinition

logger = logging.getLogger(__name__)


def to_dependency_graph(definition: WorkflowDefinition) -> nx.DiGraph:
    """Convert a workflow definition to a directed dependency graph.

    Edges point from a dependency to the step that depends on it. Dependencies
    on unknown step ids are left out.
    """
    graph = nx.DiGraph()
    for step in definition.steps:
        graph.add_node(step.id)
    known = set(graph.nodes)
    for step in definition.steps:
        for dep in step.dependencies:
            if dep in known:
                graph.add_edge(dep, step.id)
    return graph


def validate_definition(definition: WorkflowDefinition, reject_cycles: bool = True) -> List[str]:
    """Collect every rule the definition breaks.

    Args:
        definition: Definition to check
        reject_cycles: Also report dependency cycles

    Returns:
        List of violation messages, empty when the definition is valid
    """
    violations: List[str] = []

    if not definition.id or not definition.id.strip():
        violations.append("workflow id must not be empty")
    if not definition.name or not definition.name.strip():
        violations.append("workflow name must not be empty")
    if not definition.steps:
        violations.append("workflow must have at least one step")
        return violations

    counts = Counter(step.id for step in definition.steps)
    for step_id, count in counts.items():
        if count > 1:
            violations.append(f"duplicate step id '{step_id}'")

    known = set(counts)
    for step in definition.steps:
        if not step.id or not step.id.strip():
            violations.append("step id must not be empty")
        for dep in sorted(step.dependencies):
            if dep not in known:
                violations.append(f"step '{step.id}' depends on unknown step '{dep}'")
        if step.headless:
            if step.on_activate is None and step.completion_condition is None:
                violations.append(
                    f"headless step '{step.id}' needs an activation hook or a completion condition"
                )
            if step.screen is not None:
                violations.append(f"headless step '{step.id}' must not reference a screen")
        elif step.screen is None or not step.screen.strip():
            violations.append(f"interactive step '{step.id}' must reference a screen")

    if reject_cycles:
        graph = to_dependency_graph(definition)
        if not nx.is_directed_acyclic_graph(graph):
            cycle = nx.find_cycle(graph)
            path = " -> ".join([edge[0] for edge in cycle] + [cycle[0][0]])
            violations.append(f"dependency cycle: {path}")

    return violations


class WorkflowRegistry:
    """Stores validated workflow definitions by id.

    The registry is created by the application and handed to the engine; it
    is not a module-level singleton.
    """

    def __init__(self, reject_cycles: bool = True):
        """Initialize registry.

        Args:
            reject_cycles: Reject definitions whose dependencies form a cycle
        """
        self.reject_cycles = reject_cycles
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._lock = Lock()

    def register(self, definition: WorkflowDefinition) -> str:
        """Validate and store a workflow definition.

        A definition sharing the id of an existing one replaces it.

        Args:
            definition: Workflow definition

        Returns:
            Workflow ID

        Raises:
            DefinitionError: Listing every violation found
        """
        violations = validate_definition(definition, reject_cycles=self.reject_cycles)
        if violations:
            logger.warning(
                f"Rejected workflow definition {definition.id!r}: {len(violations)} violation(s)"
            )
            raise DefinitionError(definition.id, violations)

        with self._lock:
            replaced = definition.id in self._definitions
            self._definitions[definition.id] = definition
        verb = "Replaced" if replaced else "Registered"
        logger.info(f"{verb} workflow: {definition.name} ({definition.id})")
        return definition.id

    def unregister(self, workflow_id: str) -> bool:
        with self._lock:
            return self._definitions.pop(workflow_id, None) is not None

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        with self._lock:
            return self._definitions.get(workflow_id)

    def list(self) -> List[WorkflowDefinition]:
        """Return all definitions in registration order."""
        with self._lock:
            return list(self._definitions.values())

    def __contains__(self, workflow_id: object) -> bool:
        with self._lock:
            return workflow_id in self._definitions

    def __len__(self) -> int:
        with self._lock:
            return len(self._definitions)
