"""Text renderings of plans and executions for the CLI and for debugging."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from .events import EmailAddress, EmailMessage, TriggerData
from .execution import Execution, StepStatus
from .execution_log import LogEntry
from .models import EmailFromTrigger, EmailSubjectTrigger, Plan, Step, TimerTrigger

INDENT = "  "

_STATUS_MARKERS: dict[StepStatus, str] = {
    StepStatus.SUCCESS: "[ok]",
    StepStatus.FAILED: "[failed]",
    StepStatus.SKIPPED: "[skipped]",
}


def describe_trigger(trigger: object) -> str:
    if isinstance(trigger, EmailFromTrigger):
        return f"email from {trigger.from_address}"
    if isinstance(trigger, EmailSubjectTrigger):
        return f'email subject {trigger.match_type} "{trigger.subject}"'
    if isinstance(trigger, TimerTrigger):
        tz = f" ({trigger.timezone})" if trigger.timezone else ""
        if trigger.interval_minutes is not None:
            return f"every {trigger.interval_minutes:g} minutes{tz}"
        return f"daily at {trigger.specific_time}{tz}"
    return "unknown trigger"


def _describe_condition(step: Step) -> str | None:
    condition = step.condition
    if condition is None or condition.type == "always":
        return None
    if condition.type == "never":
        return "never"
    value = "" if condition.operator in ("exists", "not_exists") else f" {condition.value!r}"
    return f"{condition.path} {condition.operator}{value}"


def visualize_plan(plan: Plan) -> str:
    lines = [
        f"Workflow: {plan.name} ({plan.id})",
        f"Enabled: {'yes' if plan.enabled else 'no'}",
        f"Trigger: {describe_trigger(plan.trigger)}",
    ]
    if plan.description:
        lines.append(f"Description: {plan.description}")
    lines.append("")

    for index, step in enumerate(plan.steps, start=1):
        lines.append(f"{index}. {step.id} [{step.action}]")
        condition = _describe_condition(step)
        if condition:
            lines.append(f"{INDENT}if: {condition}")
        if step.on_error is not None:
            policy = step.on_error
            detail = f"{policy.action}, {policy.max_attempts} attempt(s)"
            if policy.fallback_step_id:
                detail += f", fallback {policy.fallback_step_id}"
            lines.append(f"{INDENT}on error: {detail}")
    return "\n".join(lines)


def _format_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def execution_trace(plan: Plan, execution: Execution, logs: list[LogEntry] | None = None) -> str:
    """Step-by-step account of one execution, with its log lines grouped per step."""

    by_step: dict[str, list[LogEntry]] = {}
    for entry in logs or []:
        if entry.step_id:
            by_step.setdefault(entry.step_id, []).append(entry)

    lines = [
        f"Workflow: {plan.name}",
        f"Execution: {execution.id}",
        f"Status: {execution.status.value}",
    ]
    if execution.duration_ms is not None:
        lines.append(f"Duration: {execution.duration_ms}ms")
    email = (execution.trigger_data or {}).get("email")
    if isinstance(email, dict):
        sender = (email.get("from") or {}).get("email", "unknown")
        lines.append(f"Trigger: {execution.trigger_type} {sender} -> {email.get('subject', '')}")
    else:
        lines.append(f"Trigger: {execution.trigger_type}")
    lines.append("")

    for index, step in enumerate(plan.steps, start=1):
        result = execution.result_for(step.id)
        marker = _STATUS_MARKERS.get(result.status, "") if result else "[not run]"
        lines.append(f"{index}. {marker} {step.id} [{step.action}]")
        if result is None:
            continue
        if result.status is not StepStatus.SKIPPED:
            lines.append(f"{INDENT}attempts: {result.attempts}, {result.duration_ms}ms")
        for entry in by_step.get(step.id, []):
            lines.append(f"{INDENT}{entry.level.upper()}: {entry.message}")
        if result.status is StepStatus.SUCCESS and result.output is not None:
            output = _format_output(result.output.data)
            lines.extend(f"{INDENT}| {line}" for line in output.splitlines())
        elif result.status is StepStatus.FAILED:
            lines.append(f"{INDENT}error: {result.error}")

    lines.append("")
    lines.append(
        "Summary: "
        f"{execution.count(StepStatus.SUCCESS)} succeeded, "
        f"{execution.count(StepStatus.FAILED)} failed, "
        f"{execution.count(StepStatus.SKIPPED)} skipped"
    )
    return "\n".join(lines)


def sample_trigger_data(plan: Plan, *, now: datetime | None = None) -> TriggerData:
    """Plausible trigger data for a dry run of ``plan``."""

    now = now or datetime.now(tz=UTC)
    trigger = plan.trigger
    if isinstance(trigger, TimerTrigger):
        return TriggerData(triggered_at=now)

    sender = "sender@example.com"
    subject = "Test email"
    if isinstance(trigger, EmailFromTrigger):
        sender = trigger.from_address
    elif isinstance(trigger, EmailSubjectTrigger) and trigger.match_type != "regex":
        subject = trigger.subject
    elif isinstance(trigger, EmailSubjectTrigger):
        subject = f"Test email matching {trigger.subject}"

    email = EmailMessage(
        id=f"sample-{int(now.timestamp())}",
        from_=EmailAddress(email=sender, name="Sample Sender"),
        to=[EmailAddress(email="me@example.com")],
        subject=subject,
        body="This is a sample email body for testing the workflow.",
        date=now,
        labels=["inbox"],
        thread_id="sample-thread",
    )
    return TriggerData(email=email, triggered_at=now)
