"""Tests for console UI components."""

import io
import json
import logging
import threading

from rich.console import Console
from rich.logging import RichHandler

from src.orchestration.templates import OnboardingWorkflow
from src.ui.console import ConsoleManager, ThreadSafeConsole


def _rich_manager(width=120):
    manager = ConsoleManager()
    buffer = io.StringIO()
    manager.console = ThreadSafeConsole(Console(file=buffer, width=width, no_color=True))
    return manager, buffer


RECORD = {
    "workflowId": "onboarding",
    "currentStepId": "pin",
    "paused": True,
    "completedStepIds": ["preface", "terms"],
    "data": {},
    "history": [
        {"workflowId": "onboarding", "stepId": "preface", "completedAt": "2024-05-01T12:00:00+00:00", "data": None},
        {
            "workflowId": "onboarding",
            "stepId": "terms",
            "completedAt": "2024-05-01T12:01:00+00:00",
            "data": {"terms_accepted": True},
        },
    ],
}


class TestConsoleManagerJson:
    """Test JSON output mode."""

    def test_json_mode_has_no_console(self):
        assert ConsoleManager(json_output=True).console is None

    def test_print_event(self, capsys):
        event = {"type": "STEP_STARTED", "workflowId": "wf", "stepId": "a", "timestamp": "t"}
        ConsoleManager(json_output=True).print_event(event)

        assert json.loads(capsys.readouterr().out) == event

    def test_print_definitions(self, capsys):
        ConsoleManager(json_output=True).print_definitions([OnboardingWorkflow.create()])

        listing = json.loads(capsys.readouterr().out)
        assert listing[0]["id"] == "onboarding"
        assert listing[0]["steps"][0] == "preface"
        assert "biometry" not in listing[0]["required"]

    def test_print_violations(self, capsys):
        ConsoleManager(json_output=True).print_violations("wf", ["x", "y"])

        assert json.loads(capsys.readouterr().out) == {"workflowId": "wf", "valid": False, "violations": ["x", "y"]}

    def test_log_handler_is_plain(self):
        handler = ConsoleManager(json_output=True).build_log_handler()

        assert not isinstance(handler, RichHandler)
        assert isinstance(handler, logging.StreamHandler)


class TestConsoleManagerRich:
    """Test Rich rendering."""

    def test_log_handler_is_rich(self):
        assert isinstance(ConsoleManager().build_log_handler(), RichHandler)

    def test_print_event(self):
        manager, buffer = _rich_manager()
        manager.print_event({"type": "STEP_COMPLETED", "workflowId": "wf", "stepId": "pin"})

        assert "STEP_COMPLETED wf pin" in buffer.getvalue()

    def test_print_state_with_definition(self):
        manager, buffer = _rich_manager()
        manager.print_state(RECORD, OnboardingWorkflow.create())

        out = buffer.getvalue()
        assert "(paused)" in out
        assert "completed" in out
        assert "current" in out
        assert "CreatePIN" in out
        assert "terms_accepted" in out

    def test_print_state_without_definition(self):
        manager, buffer = _rich_manager()
        manager.print_state(RECORD)

        out = buffer.getvalue()
        assert "Current step: pin" in out
        assert "Completed: preface, terms" in out

    def test_print_violations(self):
        manager, buffer = _rich_manager()
        manager.print_violations("wf", ["duplicate step id 'a'"])

        assert "duplicate step id 'a'" in buffer.getvalue()

    def test_print_valid(self):
        manager, buffer = _rich_manager()
        manager.print_valid("wf")

        assert "wf" in buffer.getvalue()


class TestThreadSafeConsole:
    def test_concurrent_prints(self):
        buffer = io.StringIO()
        console = ThreadSafeConsole(Console(file=buffer, width=80))

        threads = [threading.Thread(target=console.print, args=(f"line-{i}",)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        lines = buffer.getvalue().splitlines()
        assert sorted(lines) == sorted(f"line-{i}" for i in range(10))
