"""Static validation of plans before they are persisted or enabled.

The validator walks steps in order while tracking which outputs would be available at
that point: ``trigger`` first, then each step's declared output shape. Every reference a
step makes (in its condition or inside its inputs) must point at something already
available, with a sub-path the producing action actually declares. Because only earlier
steps are ever available, forward references, self references and cycles are all
reported the same way, and validation always terminates.

Required per-action inputs are enforced by the step models themselves; when the
validator is handed raw data, model errors are reported as validation errors.
"""

from __future__ import annotations

import difflib
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .models import Plan, PlanDraft, RunAnalysisStep, Step, TimerTrigger
from .references import TRIGGER_ROOT, iter_references, split_reference

TRIGGER_FIELDS: tuple[str, ...] = (
    "email_id",
    "triggered_at",
    "email",
    "email.id",
    "email.from",
    "email.from.email",
    "email.from.name",
    "email.to",
    "email.cc",
    "email.subject",
    "email.body",
    "email.date",
    "email.labels",
    "email.is_read",
    "email.has_attachment",
    "email.thread_id",
)

# Declared output envelope per action. Label operations produce no data field.
ACTION_OUTPUT_FIELDS: dict[str, tuple[str, ...]] = {
    "send_email": ("success", "data", "data.message_id"),
    "schedule_email": ("success", "data", "data.scheduled_id"),
    "run_analysis": ("success", "data"),
    "add_labels": ("success",),
    "remove_labels": ("success",),
    "listen_for_senders": ("success", "data", "data.listener_id"),
}


class ValidationIssue(BaseModel):
    step_id: str
    field: str
    message: str
    suggestion: str | None = None


class ValidationWarning(BaseModel):
    step_id: str
    message: str


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)


def validate_plan(plan: Plan | PlanDraft | Mapping[str, Any]) -> ValidationResult:
    if isinstance(plan, Mapping):
        parsed = _parse(plan)
        if isinstance(parsed, ValidationResult):
            return parsed
        plan = parsed
    return PlanValidator(plan).run()


def suggest_fixes(errors: list[ValidationIssue]) -> list[str]:
    suggestions: list[str] = []
    for error in errors:
        if error.field == "on_error.fallback_step_id":
            hint = f'Point the fallback of step "{error.step_id}" at another existing step'
        elif "not available" in error.message:
            hint = f'Move step "{error.step_id}" after the step it references'
        elif "does not exist" in error.message:
            hint = f'Reference a declared output field in "{error.field}" of "{error.step_id}"'
        elif "Duplicate" in error.message:
            hint = f'Rename one of the steps called "{error.step_id}"'
        else:
            hint = f'Fix "{error.field}" of step "{error.step_id}": {error.message}'
        if hint not in suggestions:
            suggestions.append(hint)
    return suggestions


def _parse(raw: Mapping[str, Any]) -> PlanDraft | ValidationResult:
    model: type[PlanDraft] = Plan if "id" in raw else PlanDraft
    try:
        return model.model_validate(dict(raw))
    except ValidationError as e:
        errors = [_issue_from_pydantic(raw, err) for err in e.errors()]
        return ValidationResult(valid=False, errors=errors)


def _issue_from_pydantic(raw: Mapping[str, Any], err: Any) -> ValidationIssue:
    loc = [str(part) for part in err.get("loc", ())]
    step_id = "plan"
    if len(loc) >= 2 and loc[0] == "steps":
        steps = raw.get("steps")
        try:
            candidate = steps[int(loc[1])].get("id") if isinstance(steps, list) else None
        except (ValueError, IndexError, AttributeError):
            candidate = None
        step_id = candidate if isinstance(candidate, str) and candidate else f"steps[{loc[1]}]"
        # Discriminated unions add the tag to the location; drop it and the index.
        loc = [part for part in loc[2:] if part not in ACTION_OUTPUT_FIELDS]
    return ValidationIssue(
        step_id=step_id,
        field=".".join(loc) or "plan",
        message=str(err.get("msg", "invalid value")),
    )


class PlanValidator:
    """Simulates output availability across a plan's steps."""

    def __init__(self, plan: PlanDraft) -> None:
        self._plan = plan
        self._errors: list[ValidationIssue] = []
        self._warnings: list[ValidationWarning] = []
        self._available: dict[str, tuple[str, ...]] = {TRIGGER_ROOT: TRIGGER_FIELDS}
        # step id -> indices of the steps that reference it
        self._referenced_by: dict[str, set[int]] = {}

    def run(self) -> ValidationResult:
        steps = self._plan.steps
        step_ids = [step.id for step in steps]

        for index, step in enumerate(steps):
            self._check_condition(index, step)
            self._check_inputs(index, step)
            self._check_error_policy(step, step_ids)
            self._available[step.id] = ACTION_OUTPUT_FIELDS.get(step.action, ("success",))

        self._check_duplicates(step_ids)
        self._check_unused_analysis(steps)

        return ValidationResult(
            valid=not self._errors,
            errors=self._errors,
            warnings=self._warnings,
        )

    def _check_condition(self, index: int, step: Step) -> None:
        condition = step.condition
        if condition is None or condition.type != "previous_step_output":
            return
        self._check_reference(index, step, "condition.path", condition.path or "")

    def _check_inputs(self, index: int, step: Step) -> None:
        raw = step.inputs.model_dump(mode="json", by_alias=True)
        for location, reference in iter_references(raw):
            self._check_reference(index, step, f"inputs.{location}", reference)

    def _check_reference(self, index: int, step: Step, field: str, reference: str) -> None:
        root, path = split_reference(reference)
        if root != TRIGGER_ROOT:
            self._referenced_by.setdefault(root, set()).add(index)
        elif path[:1] in (["email"], ["email_id"]) and isinstance(
            self._plan.trigger, TimerTrigger
        ):
            self._warnings.append(
                ValidationWarning(
                    step_id=step.id,
                    message=(
                        f'{field} references "{reference}" but timer-triggered runs '
                        "carry no email"
                    ),
                )
            )

        if root not in self._available:
            self._errors.append(
                ValidationIssue(
                    step_id=step.id,
                    field=field,
                    message=f'Referenced step "{root}" is not available before step "{step.id}"',
                    suggestion=f"Available steps: {', '.join(self._available)}",
                )
            )
            return

        if not path:
            return
        dotted = ".".join(path)
        fields = self._available[root]
        if dotted in fields:
            return

        close = difflib.get_close_matches(dotted, fields, n=1)
        did_you_mean = f'Did you mean "{close[0]}"? ' if close else ""
        self._errors.append(
            ValidationIssue(
                step_id=step.id,
                field=field,
                message=f'Path "{dotted}" does not exist in "{root}" output',
                suggestion=f"{did_you_mean}Available fields: {', '.join(fields)}",
            )
        )

    def _check_error_policy(self, step: Step, step_ids: list[str]) -> None:
        policy = step.on_error
        if policy is None:
            return
        if policy.action == "fallback_step" and not policy.fallback_step_id:
            self._errors.append(
                ValidationIssue(
                    step_id=step.id,
                    field="on_error.fallback_step_id",
                    message="fallback_step policy requires fallback_step_id",
                )
            )
            return
        if policy.fallback_step_id is None:
            return
        if policy.fallback_step_id == step.id:
            self._errors.append(
                ValidationIssue(
                    step_id=step.id,
                    field="on_error.fallback_step_id",
                    message="A step cannot be its own fallback",
                )
            )
        elif policy.fallback_step_id not in step_ids:
            self._errors.append(
                ValidationIssue(
                    step_id=step.id,
                    field="on_error.fallback_step_id",
                    message=f'Fallback step "{policy.fallback_step_id}" not found',
                    suggestion=f"Steps in this plan: {', '.join(step_ids)}",
                )
            )

    def _check_duplicates(self, step_ids: list[str]) -> None:
        seen: set[str] = set()
        reported: set[str] = set()
        for step_id in step_ids:
            if step_id in seen and step_id not in reported:
                self._errors.append(
                    ValidationIssue(
                        step_id=step_id,
                        field="id",
                        message=f"Duplicate step ID: {step_id}",
                    )
                )
                reported.add(step_id)
            seen.add(step_id)

    def _check_unused_analysis(self, steps: list[Step]) -> None:
        for index, step in enumerate(steps):
            if not isinstance(step, RunAnalysisStep):
                continue
            later = {i for i in self._referenced_by.get(step.id, set()) if i > index}
            if not later:
                self._warnings.append(
                    ValidationWarning(
                        step_id=step.id,
                        message="Analysis output is not used by any subsequent step",
                    )
                )
