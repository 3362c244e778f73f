"""Global pytest fixtures and configuration.

This module provides shared fixtures for all tests including:
- A fresh workflow registry and event bus per test
- A recording navigator standing in for the application's screen router
- An engine wired to all of the above
- Isolation of configuration read from the environment
"""
from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest

from src.config import reset_config
from src.orchestration.events import EventBus, EventType, WorkflowEvent
from src.orchestration.registry import WorkflowRegistry
from src.orchestration.workflow_engine import BackgroundHookExecutor, WorkflowEngine


class RecordingNavigator:
    """Navigator that records every (screen, params) call."""

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, screen: str, params: Dict[str, Any]) -> None:
        self.calls.append((screen, params))

    @property
    def screens(self) -> List[str]:
        return [screen for screen, _ in self.calls]


class EventRecorder:
    """Event listener that keeps every event it receives."""

    def __init__(self):
        self.events: List[WorkflowEvent] = []

    def __call__(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[EventType]:
        return [event.type for event in self.events]

    def of_type(self, event_type: EventType) -> List[WorkflowEvent]:
        return [event for event in self.events if event.type == event_type]


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Drop cached config and workflow env vars so each test starts clean."""
    for key in (
        "WORKFLOW_REJECT_CYCLES",
        "WORKFLOW_HOOK_WORKERS",
        "WORKFLOW_STATE_FILE",
        "LOG_LEVEL",
        "LOG_TO_FILE",
        "VERBOSE",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def registry() -> WorkflowRegistry:
    return WorkflowRegistry()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    listener = EventRecorder()
    event_bus.subscribe(listener)
    return listener


@pytest.fixture
def hook_executor():
    executor = BackgroundHookExecutor(max_workers=2)
    yield executor
    executor.shutdown()


@pytest.fixture
def engine(registry, navigator, event_bus, recorder, hook_executor) -> WorkflowEngine:
    """Engine wired to the recording navigator and event recorder."""
    return WorkflowEngine(
        registry,
        navigate=navigator,
        event_bus=event_bus,
        hook_executor=hook_executor,
    )
