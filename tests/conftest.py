"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from mailflow.automation.workflow.actions import ActionResult
from mailflow.automation.workflow.events import EmailAddress, EmailMessage
from mailflow.automation.workflow.execution_log import ExecutionLog
from mailflow.automation.workflow.mock_actions import InMemoryMailActions
from mailflow.automation.workflow.models import Plan

Behaviour = Callable[[Any], ActionResult]


class ScriptedActions:
    """Capability port whose per-action behaviour is set by the test.

    Unscripted actions succeed with ``{"action": name}`` as data. A behaviour may return
    an ``ActionResult`` or raise.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.behaviours: dict[str, Behaviour] = {}

    def script(self, action: str, behaviour: Behaviour) -> None:
        self.behaviours[action] = behaviour

    def count(self, action: str) -> int:
        return sum(1 for name, _ in self.calls if name == action)

    def inputs_for(self, action: str) -> list[Any]:
        return [inputs for name, inputs in self.calls if name == action]

    async def _call(self, action: str, inputs: Any) -> ActionResult:
        self.calls.append((action, inputs))
        behaviour = self.behaviours.get(action)
        if behaviour is None:
            return ActionResult.ok({"action": action})
        return behaviour(inputs)

    async def send_email(self, inputs: Any) -> ActionResult:
        return await self._call("send_email", inputs)

    async def schedule_email(self, inputs: Any) -> ActionResult:
        return await self._call("schedule_email", inputs)

    async def run_analysis(self, inputs: Any) -> ActionResult:
        return await self._call("run_analysis", inputs)

    async def add_labels(self, inputs: Any) -> ActionResult:
        return await self._call("add_labels", inputs)

    async def remove_labels(self, inputs: Any) -> ActionResult:
        return await self._call("remove_labels", inputs)

    async def listen_for_senders(self, inputs: Any) -> ActionResult:
        return await self._call("listen_for_senders", inputs)


def make_email(**overrides: Any) -> EmailMessage:
    data: dict[str, Any] = {
        "id": "email-1",
        "from_": EmailAddress(email="client@example.com", name="Client"),
        "to": [EmailAddress(email="me@example.com")],
        "subject": "Please analyze this report",
        "body": "Numbers attached.",
        "labels": ["inbox"],
        "thread_id": "thread-1",
    }
    data.update(overrides)
    return EmailMessage(**data)


def make_plan(steps: list[dict[str, Any]], **overrides: Any) -> Plan:
    data: dict[str, Any] = {
        "id": "plan-1",
        "name": "Test plan",
        "trigger": {"type": "email_subject", "subject": "analyze"},
        "steps": steps,
    }
    data.update(overrides)
    return Plan.model_validate(data)


def send_step(step_id: str, **extra: Any) -> dict[str, Any]:
    return {
        "id": step_id,
        "action": "send_email",
        "inputs": {"to": ["boss@example.com"], "subject": "Hi", "body": "Hello"},
        **extra,
    }


def analysis_step(step_id: str, **extra: Any) -> dict[str, Any]:
    return {
        "id": step_id,
        "action": "run_analysis",
        "inputs": {"prompt": "Classify this email", "use_trigger_email": True},
        **extra,
    }


def label_step(step_id: str, **extra: Any) -> dict[str, Any]:
    return {
        "id": step_id,
        "action": "add_labels",
        "inputs": {"label_ids": ["urgent"], "operation": "add"},
        **extra,
    }


@pytest.fixture
def scripted_actions() -> ScriptedActions:
    return ScriptedActions()


@pytest.fixture
def mail_actions() -> InMemoryMailActions:
    actions = InMemoryMailActions()
    actions.add_email(make_email())
    return actions


@pytest.fixture
def execution_log() -> ExecutionLog:
    return ExecutionLog()


@pytest.fixture
def email() -> EmailMessage:
    return make_email()


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state = tmp_path / "mailflow_state"
    state.mkdir()
    return state
