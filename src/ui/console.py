"""Console rendering with Rich.

This module provides a ConsoleManager that adapts output to:
- Rich-rendered tables and panels for humans
- JSON lines for machine-readable output (CI/CD)
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..orchestration.workflow_engine.steps import WorkflowDefinition

_EVENT_STYLES = {
    "WORKFLOW_STARTED": "bold blue",
    "WORKFLOW_COMPLETED": "bold green",
    "WORKFLOW_CANCELLED": "bold red",
    "WORKFLOW_PAUSED": "yellow",
    "WORKFLOW_RESUMED": "yellow",
    "STEP_STARTED": "cyan",
    "STEP_COMPLETED": "green",
    "STEP_SKIPPED": "magenta",
}


class ThreadSafeConsole:
    """Thread-safe wrapper around Rich Console."""

    def __init__(self, console: Console):
        self._console = console
        self._lock = threading.RLock()  # Reentrant lock for nested calls

    def print(self, *args, **kwargs):
        """Thread-safe print method."""
        with self._lock:
            self._console.print(*args, **kwargs)


class ConsoleManager:
    """Manages console output with Rich integration."""

    def __init__(self, verbose: bool = False, json_output: bool = False, no_color: bool = False):
        self.verbose = verbose
        self.json_output = json_output

        if self.json_output:
            self.console = None
        else:
            raw_console = Console(no_color=no_color)
            self.console = ThreadSafeConsole(raw_console)

    def build_log_handler(self) -> logging.Handler:
        """Create the handler used for application logging."""
        if self.json_output or self.console is None:
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("%(message)s"))
            return handler
        return RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=self.verbose,
            rich_tracebacks=True,
        )

    def print_event(self, event: Dict[str, Any]) -> None:
        """Print one workflow event (as produced by WorkflowEvent.to_dict)."""
        if self.json_output:
            print(json.dumps(event, default=str))
            return
        style = _EVENT_STYLES.get(event.get("type", ""), "white")
        step = f" [bold]{event['stepId']}[/bold]" if event.get("stepId") else ""
        self.console.print(f"[{style}]{event.get('type')}[/{style}] {event.get('workflowId')}{step}")

    def print_definitions(self, definitions: Iterable[WorkflowDefinition]) -> None:
        definitions = list(definitions)
        if self.json_output:
            print(
                json.dumps(
                    [
                        {
                            "id": d.id,
                            "name": d.name,
                            "steps": d.step_ids,
                            "required": d.required_step_ids,
                            "pausable": d.pausable,
                            "skippable": d.skippable,
                        }
                        for d in definitions
                    ]
                )
            )
            return

        table = Table(title="Workflows")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Steps", justify="right")
        table.add_column("Required", justify="right")
        table.add_column("Pausable")
        table.add_column("Skippable")
        for d in definitions:
            table.add_row(
                d.id,
                d.name,
                str(len(d.steps)),
                str(len(d.required_step_ids)),
                "yes" if d.pausable else "no",
                "yes" if d.skippable else "no",
            )
        self.console.print(table)

    def print_violations(self, workflow_id: str, violations: List[str]) -> None:
        if self.json_output:
            print(json.dumps({"workflowId": workflow_id, "valid": False, "violations": violations}))
            return
        body = "\n".join(f"• {escape(v)}" for v in violations)
        self.console.print(Panel(body, title=f"[bold red]{workflow_id or '<no id>'}[/bold red]", style="red"))

    def print_valid(self, workflow_id: str) -> None:
        if self.json_output:
            print(json.dumps({"workflowId": workflow_id, "valid": True}))
            return
        self.console.print(f"[green]✓[/green] {workflow_id}")

    def print_state(
        self,
        record: Dict[str, Any],
        definition: Optional[WorkflowDefinition] = None,
    ) -> None:
        """Render a persisted state record.

        With a definition, every step is listed with its status; without one
        only the completed steps and history from the record are shown.
        """
        if self.json_output:
            print(json.dumps(record, default=str))
            return

        workflow_id = record.get("workflowId")
        if workflow_id is None:
            self.console.print(Panel("No active workflow", style="dim"))
            return

        completed = set(record.get("completedStepIds", []))
        current = record.get("currentStepId")
        header = f"[bold]{workflow_id}[/bold]"
        if record.get("paused"):
            header += " [yellow](paused)[/yellow]"
        self.console.print(Panel(header, padding=(0, 1)))

        if definition is not None:
            steps = Table(title="Steps")
            steps.add_column("Step", style="cyan")
            steps.add_column("Kind")
            steps.add_column("Required")
            steps.add_column("Depends on")
            steps.add_column("Status", style="bold")
            for step in definition.steps:
                if step.id in completed:
                    status = "[green]completed[/green]"
                elif step.id == current:
                    status = "[blue]current[/blue]"
                else:
                    status = "pending"
                steps.add_row(
                    step.id,
                    "headless" if step.headless else f"screen:{step.screen}",
                    "yes" if step.required else "no",
                    ", ".join(sorted(step.dependencies)),
                    status,
                )
            self.console.print(steps)
        else:
            self.console.print(f"Current step: {current or '-'}")
            self.console.print(f"Completed: {', '.join(sorted(completed)) or '-'}")

        history = Table(title="History")
        history.add_column("Completed at", style="green")
        history.add_column("Step", style="cyan")
        history.add_column("Data")
        for entry in record.get("history", []):
            data = entry.get("data")
            history.add_row(
                entry.get("completedAt", ""),
                entry.get("stepId", ""),
                escape(json.dumps(data, default=str)) if data else "",
            )
        self.console.print(history)

