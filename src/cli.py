"""Command line interface for the workflow orchestration engine.

This module serves as the main entry point for the CLI with all commands
consolidated in a single file.
"""
from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import get_config
from .orchestration.errors import DefinitionError, NotFoundError, WorkflowError
from .orchestration.events import EventBus, WorkflowEvent
from .orchestration.registry import WorkflowRegistry, validate_definition
from .orchestration.state_manager import PersistedState
from .orchestration.templates import TEMPLATES, get_workflow_template
from .orchestration.workflow_engine import BackgroundHookExecutor, WorkflowDefinition, WorkflowEngine
from .ui.console import ConsoleManager
from .utils.logging_factory import LoggingFactory

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

# Exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2
EXIT_NOT_FOUND = 3

# Upper bound on completions driven by ``simulate``.
MAX_SIMULATED_STEPS = 100


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="workflow-engine",
        description="Dependency-aware workflow orchestration engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  # List bundled workflow templates
  workflow-engine templates

  # Validate definitions exported by a module
  workflow-engine validate myapp.flows:ONBOARDING

  # Run a template headlessly, stopping before the PIN step
  workflow-engine simulate onboarding --stop-at pin --save-state state.json

  # Render a saved state record
  workflow-engine inspect state.json
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-output",
        action="store_true",
        help="Emit machine-readable JSON to stdout",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    subparsers.add_parser("templates", help="List bundled workflow templates")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate workflow definitions",
        description="Import definitions from MODULE:ATTR (or name a bundled template) and report every violation",
    )
    validate_parser.add_argument("target", help="module:attribute or bundled template name")
    validate_parser.add_argument(
        "--allow-cycles",
        action="store_true",
        help="Do not report dependency cycles",
    )

    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Render a persisted workflow state record",
    )
    inspect_parser.add_argument("state_file", help="Path to a JSON state record")

    simulate_parser = subparsers.add_parser(
        "simulate",
        help="Drive a bundled template headlessly",
        description="Start a template and complete each interactive step as soon as it is shown",
    )
    simulate_parser.add_argument("template", choices=sorted(TEMPLATES), help="Template name")
    simulate_parser.add_argument(
        "--data",
        "-d",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Initial workflow data (VALUE is parsed as JSON when possible)",
    )
    simulate_parser.add_argument(
        "--stop-at",
        metavar="STEP",
        help="Stop when this step becomes current instead of completing it",
    )
    simulate_parser.add_argument(
        "--save-state",
        metavar="PATH",
        help="Write the state record here when stopping early (default: WORKFLOW_STATE_FILE)",
    )

    return parser


def _parse_data(pairs: List[str]) -> Dict[str, Any]:
    """Parse ``KEY=VALUE`` pairs into a data mapping.

    Raises:
        ValueError: If a pair has no ``=``
    """
    data: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{pair}'")
        try:
            data[key] = json.loads(raw)
        except json.JSONDecodeError:
            data[key] = raw
    return data


def load_definitions(target: str) -> List[WorkflowDefinition]:
    """Resolve ``module:attr`` (or a template name) to workflow definitions.

    The attribute may be a definition, an iterable of definitions, or a
    zero-argument callable returning either.

    Raises:
        ValueError: If the target cannot be resolved to definitions
    """
    if ":" not in target:
        definition = get_workflow_template(target)
        if definition is None:
            raise ValueError(f"'{target}' is neither module:attr nor a bundled template")
        return [definition]

    module_name, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import {module_name}: {e}") from e
    try:
        obj = getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"{module_name} has no attribute {attr}") from e

    if callable(obj) and not isinstance(obj, WorkflowDefinition):
        obj = obj()
    if isinstance(obj, WorkflowDefinition):
        return [obj]
    if isinstance(obj, dict):
        obj = list(obj.values())
    definitions = list(obj) if isinstance(obj, (list, tuple, set, frozenset)) else []
    if not definitions or not all(isinstance(d, WorkflowDefinition) for d in definitions):
        raise ValueError(f"{target} does not provide WorkflowDefinition objects")
    return definitions


def templates_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the templates subcommand."""
    definitions = [get_workflow_template(name) for name in sorted(TEMPLATES)]
    console_manager.print_definitions(definitions)
    return EXIT_OK


def validate_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the validate subcommand.

    Returns:
        0 when every definition is valid, 2 otherwise
    """
    try:
        definitions = load_definitions(args.target)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_ERROR

    reject_cycles = not args.allow_cycles and get_config().reject_dependency_cycles
    exit_code = EXIT_OK
    for definition in definitions:
        violations = validate_definition(definition, reject_cycles=reject_cycles)
        if violations:
            exit_code = EXIT_INVALID
            console_manager.print_violations(definition.id, violations)
        else:
            console_manager.print_valid(definition.id)
    return exit_code


def inspect_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the inspect subcommand."""
    path = Path(args.state_file)
    try:
        record = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        logger.error(f"Cannot read {path}: {e}")
        return EXIT_ERROR
    except json.JSONDecodeError as e:
        logger.error(f"{path} is not valid JSON: {e}")
        return EXIT_INVALID

    try:
        persisted = PersistedState.model_validate(record)
    except ValidationError as e:
        logger.error(f"{path} is not a workflow state record: {e}")
        return EXIT_INVALID

    definition = None
    if persisted.workflow_id is not None:
        definition = get_workflow_template(persisted.workflow_id)
        if definition is None:
            logger.debug(f"No bundled template for {persisted.workflow_id}; showing record only")

    console_manager.print_state(persisted.model_dump(by_alias=True), definition)
    return EXIT_OK


def simulate_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the simulate subcommand.

    Interactive steps are recorded by a navigator and then completed with no
    data, so headless steps and completion conditions run exactly as they
    would in an application.
    """
    config = get_config()
    try:
        initial_data = _parse_data(args.data)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_ERROR

    registry = WorkflowRegistry(reject_cycles=config.reject_dependency_cycles)
    registry.register(get_workflow_template(args.template))

    shown: List[str] = []

    def navigate(screen: str, params: Dict[str, Any]) -> None:
        logger.debug(f"Navigate to {screen} with {params}")
        shown.append(screen)

    bus = EventBus()

    def print_event(event: WorkflowEvent) -> None:
        console_manager.print_event(event.to_dict())

    bus.subscribe(print_event)

    executor = BackgroundHookExecutor(max_workers=config.hook_workers)
    engine = WorkflowEngine(registry, navigate=navigate, event_bus=bus, hook_executor=executor)
    try:
        engine.start(args.template, initial_data)
        for _ in range(MAX_SIMULATED_STEPS):
            executor.join()
            state = engine.get_state()
            if not state.is_active:
                break
            current = state.current_step
            if current is None:
                logger.error(f"Workflow {state.workflow_id} stalled")
                return EXIT_ERROR
            if current.id == args.stop_at:
                return _save_snapshot(engine, args.save_state or config.state_file)
            engine.complete_step(current.id)
        else:
            logger.error(f"Simulation did not finish within {MAX_SIMULATED_STEPS} steps")
            return EXIT_ERROR
    finally:
        executor.shutdown()

    logger.info(f"Simulation finished after showing {len(shown)} screen(s)")
    return EXIT_OK


def _save_snapshot(engine: WorkflowEngine, path: Optional[Path]) -> int:
    record = engine.snapshot()
    if path is None:
        logger.info("Stopped; no state file configured")
        return EXIT_OK
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2), encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed writing state to {path}: {e}")
        return EXIT_ERROR
    logger.info(f"State saved to {path}")
    return EXIT_OK


COMMANDS = {
    "templates": templates_command,
    "validate": validate_command,
    "inspect": inspect_command,
    "simulate": simulate_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    config = get_config()
    verbose = args.verbose or config.verbose
    console_manager = ConsoleManager(
        verbose=verbose, json_output=args.json_output, no_color=config.no_color
    )
    LoggingFactory.initialize_from_config(config, handlers=[console_manager.build_log_handler()])
    LoggingFactory.configure_verbose(verbose)

    try:
        return COMMANDS[args.command](args, console_manager)
    except DefinitionError as e:
        console_manager.print_violations(e.workflow_id, e.violations)
        return EXIT_INVALID
    except NotFoundError as e:
        logger.error(str(e))
        return EXIT_NOT_FOUND
    except WorkflowError as e:
        logger.error(f"{args.command} failed: {e}")
        return EXIT_ERROR
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
