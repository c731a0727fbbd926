"""CLI entrypoint for the workflow runner.

Commands work on plan files (JSON) or on the configured plan store. Runs are dry runs
against the in-memory mail capability.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from mailflow import __version__
from mailflow.automation.config import AutomationSettings
from mailflow.automation.logging import configure_logging
from mailflow.automation.workflow.debug import (
    describe_trigger,
    execution_trace,
    sample_trigger_data,
    visualize_plan,
)
from mailflow.automation.workflow.engine import WorkflowEngine
from mailflow.automation.workflow.events import TriggerData
from mailflow.automation.workflow.execution import Execution, ExecutionStatus
from mailflow.automation.workflow.execution_log import ExecutionLog
from mailflow.automation.workflow.mock_actions import InMemoryMailActions
from mailflow.automation.workflow.models import Plan
from mailflow.automation.workflow.store import PlanStore
from mailflow.automation.workflow.validator import ValidationResult, suggest_fixes, validate_plan

logger = logging.getLogger(__name__)

DRY_RUN_PLAN_ID = "dry-run"


class PlanFileError(Exception):
    """The plan file could not be read or is not a JSON object."""


def load_plan_file(path: Path) -> dict[str, Any]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise PlanFileError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise PlanFileError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise PlanFileError(f"{path} must contain a JSON object")
    return raw


def _as_plan(raw: dict[str, Any]) -> Plan:
    return Plan.model_validate({"id": DRY_RUN_PLAN_ID, **raw})


def _print_validation(result: ValidationResult) -> None:
    if result.valid:
        print("Plan is valid.")
    else:
        print(f"Plan has {len(result.errors)} error(s):")
        for error in result.errors:
            print(f"  - [{error.step_id}] {error.field}: {error.message}")
            if error.suggestion:
                print(f"      {error.suggestion}")
    for warning in result.warnings:
        print(f"  warning [{warning.step_id}] {warning.message}")
    if not result.valid:
        print("Suggested fixes:")
        for hint in suggest_fixes(result.errors):
            print(f"  * {hint}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailflow",
        description="Trigger-driven email workflow automation",
    )
    parser.add_argument("--version", action="version", version=f"mailflow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a plan file")
    validate.add_argument("plan", type=Path, help="Path to a plan JSON file")

    show = subparsers.add_parser("show", help="Print a readable outline of a plan file")
    show.add_argument("plan", type=Path, help="Path to a plan JSON file")

    run = subparsers.add_parser(
        "run",
        help="Dry-run a plan file against the in-memory mail capability",
    )
    run.add_argument("plan", type=Path, help="Path to a plan JSON file")
    run.add_argument(
        "--trigger",
        type=Path,
        default=None,
        help="JSON file with trigger data (defaults to sample data for the plan's trigger)",
    )
    run.add_argument(
        "--export-logs",
        type=Path,
        default=None,
        help="Write the execution log as JSON to this path",
    )

    subparsers.add_parser("list", help="List plans in the configured state directory")

    return parser


async def _dry_run(
    plan: Plan, trigger: TriggerData, max_log_entries: int
) -> tuple[Execution, ExecutionLog]:
    actions = InMemoryMailActions()
    if trigger.email is not None:
        actions.add_email(trigger.email)
    log = ExecutionLog(max_entries=max_log_entries)
    engine = WorkflowEngine(actions, log)
    execution = await engine.execute_workflow(plan, trigger)
    return execution, log


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = AutomationSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "list":
            store = PlanStore(settings.workflows_dir)
            store.initialize()
            plans = store.list_workflows()
            if not plans:
                print(f"No workflows in {settings.workflows_dir}")
            for plan in plans:
                state = "enabled" if plan.enabled else "disabled"
                print(f"{plan.id}  {plan.name}  [{state}]  {describe_trigger(plan.trigger)}")
            return 0

        raw = load_plan_file(args.plan)
        result = validate_plan(raw)

        if args.command == "validate":
            _print_validation(result)
            return 0 if result.valid else 1

        if not result.valid:
            _print_validation(result)
            return 1
        plan = _as_plan(raw)

        if args.command == "show":
            print(visualize_plan(plan))
            return 0

        if args.command == "run":
            if args.trigger is not None:
                trigger = TriggerData.model_validate(load_plan_file(args.trigger))
            else:
                trigger = sample_trigger_data(plan)

            execution, log = asyncio.run(_dry_run(plan, trigger, settings.max_log_entries))
            print(execution_trace(plan, execution, log.for_execution(execution.id)))

            if args.export_logs is not None:
                args.export_logs.parent.mkdir(parents=True, exist_ok=True)
                args.export_logs.write_text(log.export_json() + "\n", encoding="utf-8")
                logger.info("Execution log exported", extra={"path": str(args.export_logs)})
            return 0 if execution.status is ExecutionStatus.COMPLETED else 1

        parser.error(f"Unknown command: {args.command}")
        return 2
    except (PlanFileError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
