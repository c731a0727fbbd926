"""Facade that wires the engine, the trigger manager and the plan store together.

This is the surface authoring tools, the CLI and the HTTP API talk to. Collaborators are
passed in explicitly; nothing here reaches for global state.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from .actions import MailActions
from .engine import WorkflowEngine
from .events import EmailMessage, TriggerData
from .execution import Execution
from .execution_log import ExecutionLog, LogEntry
from .models import Plan, PlanDraft
from .store import PlanStore
from .triggers import Clock, TriggerManager
from .validator import ValidationResult, validate_plan

logger = logging.getLogger(__name__)


class InvalidPlanError(ValueError):
    """Raised when a plan is created or updated with validation errors."""

    def __init__(self, result: ValidationResult) -> None:
        messages = "; ".join(f"{e.step_id}: {e.message}" for e in result.errors)
        super().__init__(f"Invalid workflow: {messages}")
        self.result = result


class WorkflowNotFoundError(LookupError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(f"Workflow not found: {plan_id}")
        self.plan_id = plan_id


def _new_plan_id() -> str:
    return f"workflow-{uuid.uuid4().hex[:12]}"


class WorkflowService:
    def __init__(
        self,
        actions: MailActions,
        store: PlanStore,
        *,
        log: ExecutionLog | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._log = log or ExecutionLog()
        self._engine = WorkflowEngine(actions, self._log)
        self._triggers = TriggerManager(self._engine, clock=clock)

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    @property
    def triggers(self) -> TriggerManager:
        return self._triggers

    @property
    def log(self) -> ExecutionLog:
        return self._log

    async def initialize(self) -> None:
        """Load stored plans and register the enabled ones."""

        self._store.initialize()
        for plan in self._store.get_enabled_workflows():
            self._triggers.register_workflow(plan)
        logger.info(
            "Workflow service initialized",
            extra={"registered": len(self._triggers.registered_ids)},
        )

    # --- Authoring ----------------------------------------------------------

    def validate(self, plan: Plan | PlanDraft | Mapping[str, Any]) -> ValidationResult:
        return validate_plan(plan)

    async def create_workflow(self, draft: PlanDraft | Mapping[str, Any]) -> Plan:
        raw = draft.model_dump(mode="json") if isinstance(draft, PlanDraft) else dict(draft)
        raw.pop("id", None)
        candidate = {**raw, "id": _new_plan_id()}

        result = validate_plan(candidate)
        if not result.valid:
            raise InvalidPlanError(result)

        plan = self._store.save_workflow(Plan.model_validate(candidate))
        self._triggers.register_workflow(plan)
        logger.info("Workflow created", extra={"plan_id": plan.id, "plan_name": plan.name})
        return plan

    async def update_workflow(self, plan_id: str, updates: Mapping[str, Any]) -> Plan:
        current = self._require(plan_id)
        merged = {**current.model_dump(mode="json"), **updates, "id": current.id}

        result = validate_plan(merged)
        if not result.valid:
            raise InvalidPlanError(result)

        plan = self._store.update_workflow(plan_id, dict(updates))
        self._triggers.unregister_workflow(plan_id)
        if plan.enabled:
            self._triggers.register_workflow(plan)
        logger.info("Workflow updated", extra={"plan_id": plan.id, "enabled": plan.enabled})
        return plan

    async def delete_workflow(self, plan_id: str) -> None:
        self._require(plan_id)
        self._triggers.unregister_workflow(plan_id)
        self._store.delete_workflow(plan_id)
        logger.info("Workflow deleted", extra={"plan_id": plan_id})

    def get_workflow(self, plan_id: str) -> Plan | None:
        return self._store.get_workflow(plan_id)

    def list_workflows(self) -> list[Plan]:
        return self._store.list_workflows()

    # --- Execution ----------------------------------------------------------

    async def execute_workflow(
        self,
        plan_id: str,
        trigger_data: TriggerData | Mapping[str, Any] | None = None,
    ) -> Execution:
        """Run a stored plan now, regardless of its trigger or enabled flag."""

        plan = self._require(plan_id)
        trigger: TriggerData | None
        if trigger_data is None or isinstance(trigger_data, TriggerData):
            trigger = trigger_data
        else:
            trigger = TriggerData.model_validate(dict(trigger_data))
        return await self._engine.execute_workflow(plan, trigger)

    async def handle_incoming_email(self, email: EmailMessage) -> list[asyncio.Task[Execution]]:
        return await self._triggers.handle_incoming_email(email)

    async def drain(self) -> list[Execution]:
        return await self._triggers.drain()

    # --- Logs ---------------------------------------------------------------

    def get_execution_logs(self, execution_id: str) -> list[LogEntry]:
        return self._log.for_execution(execution_id)

    def get_workflow_logs(self, plan_id: str) -> list[LogEntry]:
        return self._log.for_plan(plan_id)

    def get_all_logs(self) -> list[LogEntry]:
        return self._log.entries()

    def export_all_logs(self) -> str:
        return self._log.export_json()

    def clear_logs(self) -> None:
        self._log.clear()

    def shutdown(self) -> None:
        self._triggers.shutdown()
        logger.info("Workflow service shut down")

    def _require(self, plan_id: str) -> Plan:
        plan = self._store.get_workflow(plan_id)
        if plan is None:
            raise WorkflowNotFoundError(plan_id)
        return plan
