"""Runs one plan to completion for one trigger.

Steps run strictly in order. For each step the engine evaluates its condition, resolves
its inputs against the execution context, invokes the capability port, and applies the
step's error policy. ``execute_workflow`` is a containment boundary: it returns an
``Execution`` for every plan it is given and never lets a step or port failure escape.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from .actions import ACTION_METHODS, ActionResult, MailActions
from .context import ExecutionContext
from .events import TriggerData
from .execution import Execution, ExecutionStatus, StepResult, StepStatus
from .execution_log import ExecutionLog
from .models import ErrorPolicy, Plan, RunAnalysisStep, SendEmailInputs, Step
from .policy import evaluate_condition
from .references import resolve_references

logger = logging.getLogger(__name__)


class UnknownActionError(RuntimeError):
    """A step names an action the capability port does not provide. Never retried."""


class ActionFailedError(RuntimeError):
    """The capability port reported ``success=False``."""

    def __init__(self, action: str, result: ActionResult) -> None:
        super().__init__(result.error or f"{action} reported failure")
        self.action = action
        self.result = result


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class WorkflowEngine:
    def __init__(self, actions: MailActions, log: ExecutionLog | None = None) -> None:
        self._actions = actions
        self._log = log or ExecutionLog()
        self._running: dict[str, Execution] = {}

    @property
    def log(self) -> ExecutionLog:
        return self._log

    @property
    def running_executions(self) -> list[Execution]:
        return list(self._running.values())

    async def execute_workflow(self, plan: Plan, trigger: TriggerData | None = None) -> Execution:
        trigger = trigger or TriggerData(triggered_at=_utc_now())
        execution = Execution(
            id=uuid.uuid4().hex,
            plan_id=plan.id,
            trigger_type=plan.trigger.type,
            trigger_data=trigger.to_payload(),
        )
        self._running[execution.id] = execution
        ids = {"plan_id": plan.id, "execution_id": execution.id}
        started = time.monotonic()

        self._log.info(
            "Workflow execution started",
            {
                "plan_name": plan.name,
                "trigger_type": plan.trigger.type,
                "total_steps": len(plan.steps),
                "trigger_email_id": trigger.email_id,
            },
            **ids,
        )

        try:
            context = ExecutionContext(trigger=trigger)
            await self._run_steps(plan, execution, context, ids)

            if execution.status is ExecutionStatus.RUNNING:
                execution.status = ExecutionStatus.COMPLETED

            summary = {
                "duration_ms": int((time.monotonic() - started) * 1000),
                "steps_recorded": len(execution.step_results),
                "succeeded": execution.count(StepStatus.SUCCESS),
                "failed": execution.count(StepStatus.FAILED),
                "skipped": execution.count(StepStatus.SKIPPED),
            }
            if execution.status is ExecutionStatus.COMPLETED:
                self._log.info("Workflow execution completed", summary, **ids)
            else:
                self._log.error("Workflow execution failed", summary, **ids)

        except Exception as e:
            execution.status = ExecutionStatus.FAILED
            logger.exception("Workflow execution crashed", extra=ids)
            self._log.error(
                "Workflow execution crashed",
                {
                    "duration_ms": int((time.monotonic() - started) * 1000),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                **ids,
            )
        finally:
            execution.completed_at = _utc_now()
            self._running.pop(execution.id, None)

        return execution

    async def _run_steps(
        self,
        plan: Plan,
        execution: Execution,
        context: ExecutionContext,
        ids: dict[str, str],
    ) -> None:
        ran_as_fallback: set[str] = set()

        for step in plan.steps:
            step_ids = {**ids, "step_id": step.id}

            if step.id in ran_as_fallback:
                self._log.debug("Step already ran as a fallback", **step_ids)
                continue

            self._log.debug(
                "Evaluating step",
                {
                    "action": step.action,
                    "condition": step.condition.model_dump() if step.condition else None,
                },
                **step_ids,
            )

            if not evaluate_condition(step.condition, context):
                self._log.info("Skipping step: condition not met", **step_ids)
                execution.step_results.append(StepResult.skipped(step.id))
                continue

            result = await self._execute_step(step, context, step_ids)
            self._record(execution, context, result, step_ids)
            if result.status is StepStatus.SUCCESS:
                continue

            policy = step.error_policy
            if policy.action == "fallback_step":
                fallback = plan.find_step(policy.fallback_step_id or "")
                if fallback is None:
                    self._log.error(
                        "Fallback step not found",
                        {"fallback_step_id": policy.fallback_step_id},
                        **step_ids,
                    )
                    execution.status = ExecutionStatus.FAILED
                    return

                fallback_ids = {**ids, "step_id": fallback.id}
                self._log.info(
                    "Running fallback step",
                    {"failed_step_id": step.id},
                    **fallback_ids,
                )
                fallback_result = await self._execute_step(fallback, context, fallback_ids)
                self._record(execution, context, fallback_result, fallback_ids)
                ran_as_fallback.add(fallback.id)
                if fallback_result.status is not StepStatus.SUCCESS:
                    execution.status = ExecutionStatus.FAILED
                    return
                continue

            if policy.action == "stop":
                execution.status = ExecutionStatus.FAILED
                return

    def _record(
        self,
        execution: Execution,
        context: ExecutionContext,
        result: StepResult,
        step_ids: dict[str, str],
    ) -> None:
        execution.step_results.append(result)
        if result.status is StepStatus.SUCCESS and result.output is not None:
            context.record(result.step_id, result.output)
            self._log.info(
                "Step succeeded",
                {
                    "duration_ms": result.duration_ms,
                    "attempts": result.attempts,
                    "output": result.output.to_json(),
                },
                **step_ids,
            )
        else:
            self._log.error(
                "Step failed",
                {
                    "duration_ms": result.duration_ms,
                    "attempts": result.attempts,
                    "error": result.error,
                },
                **step_ids,
            )

    async def _execute_step(
        self,
        step: Step,
        context: ExecutionContext,
        step_ids: dict[str, str],
    ) -> StepResult:
        policy = step.error_policy
        max_attempts = policy.max_attempts
        started_at = _utc_now()
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                inputs = self._materialize_inputs(step, context, step_ids)
                output = await self._invoke(step.action, inputs)
                return StepResult(
                    step_id=step.id,
                    status=StepStatus.SUCCESS,
                    output=output,
                    attempts=attempt,
                    started_at=started_at,
                    completed_at=_utc_now(),
                )
            except UnknownActionError:
                raise
            except Exception as e:
                last_error = e
                self._log.warning(
                    "Step attempt failed",
                    {
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    **step_ids,
                )
                if attempt < max_attempts and policy.retry_delay_ms > 0:
                    await asyncio.sleep(policy.retry_delay_ms / 1000)

        if policy.notify_email:
            await self._notify_failure(step, last_error, policy, step_ids)

        return StepResult(
            step_id=step.id,
            status=StepStatus.FAILED,
            error=str(last_error) if last_error is not None else "step failed",
            attempts=max_attempts,
            started_at=started_at,
            completed_at=_utc_now(),
        )

    def _materialize_inputs(
        self,
        step: Step,
        context: ExecutionContext,
        step_ids: dict[str, str],
    ) -> BaseModel:
        def _unresolved(reference: str) -> None:
            self._log.warning("Unresolved reference", {"reference": reference}, **step_ids)

        raw = step.inputs.model_dump(mode="json", by_alias=True)
        resolved = resolve_references(raw, context, on_unresolved=_unresolved)
        inputs = type(step.inputs).model_validate(resolved)

        if isinstance(step, RunAnalysisStep) and step.inputs.use_trigger_email:
            email = context.trigger_email
            if email is not None:
                inputs = inputs.model_copy(update={"emails": [email, *inputs.emails]})
        return inputs

    async def _invoke(self, action: str, inputs: Any) -> ActionResult:
        method_name = ACTION_METHODS.get(action)
        method = getattr(self._actions, method_name, None) if method_name else None
        if method is None:
            raise UnknownActionError(f"Unknown action: {action}")

        result = await method(inputs)
        if not result.success:
            raise ActionFailedError(action, result)
        return result

    async def _notify_failure(
        self,
        step: Step,
        error: Exception | None,
        policy: ErrorPolicy,
        step_ids: dict[str, str],
    ) -> None:
        address = policy.notify_email or ""
        notification = SendEmailInputs(
            to=[address],
            subject=f"Workflow error: step {step.id} failed",
            body=(
                f"Error in workflow step: {step.id}\n"
                f"Action: {step.action}\n"
                f"Error: {error}\n"
                f"Time: {_utc_now().isoformat()}\n"
            ),
            is_html=False,
        )
        try:
            result = await self._actions.send_email(notification)
        except Exception as e:
            self._log.warning(
                "Failure notification could not be sent",
                {"notify_email": address, "error": str(e)},
                **step_ids,
            )
            return

        if result.success:
            self._log.info("Failure notification sent", {"notify_email": address}, **step_ids)
        else:
            self._log.warning(
                "Failure notification could not be sent",
                {"notify_email": address, "error": result.error},
                **step_ids,
            )
