#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates using the workflow components directly:

* load settings from `.env`
* create a plan through the workflow service (validated and persisted under
  `mailflow_state/workflows/`)
* dispatch an incoming email and wait for the resulting executions

Mail actions are served by the in-memory capability, so nothing leaves the machine.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Sequence

from mailflow.automation.config import AutomationSettings
from mailflow.automation.logging import configure_logging
from mailflow.automation.workflow.debug import execution_trace
from mailflow.automation.workflow.events import EmailAddress, EmailMessage
from mailflow.automation.workflow.mock_actions import InMemoryMailActions
from mailflow.automation.workflow.service import InvalidPlanError, WorkflowService
from mailflow.automation.workflow.store import PlanStore

DEFAULT_PLAN = Path(__file__).with_name("urgent_triage.json")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a workflow against a sample email.")
    parser.add_argument("--plan", type=Path, default=DEFAULT_PLAN, help="Plan JSON file")
    parser.add_argument("--sender", default="client@example.com", help="Sender address")
    parser.add_argument("--subject", default="Please analyze this", help="Email subject")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, settings: AutomationSettings) -> int:
    actions = InMemoryMailActions(analyzer=lambda _inputs: "URGENT")
    service = WorkflowService(actions, PlanStore(settings.workflows_dir))
    await service.initialize()

    try:
        plan = await service.create_workflow(json.loads(args.plan.read_text(encoding="utf-8")))
    except InvalidPlanError as e:
        for error in e.result.errors:
            print(f"[{error.step_id}] {error.field}: {error.message}")
        return 1

    email = EmailMessage(
        id="example-1",
        from_=EmailAddress(email=args.sender),
        subject=args.subject,
        body="The production deploy is failing.",
    )
    actions.add_email(email)

    try:
        await service.handle_incoming_email(email)
        for execution in await service.drain():
            print(execution_trace(plan, execution, service.get_execution_logs(execution.id)))
    finally:
        await service.delete_workflow(plan.id)
        service.shutdown()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = AutomationSettings()
    configure_logging(settings.log_level)

    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    raise SystemExit(main())
