from __future__ import annotations

from typing import Any, Literal

from .models import (
    AddLabelsStep,
    AnalysisInputs,
    LabelInputs,
    RunAnalysisStep,
    SendEmailInputs,
    SendEmailStep,
    Step,
    StepCondition,
)

Operator = Literal["equals", "contains", "exists", "not_exists"]


def _succeeded(step_id: str) -> StepCondition:
    return StepCondition(
        type="previous_step_output",
        path=f"{step_id}.success",
        operator="equals",
        value=True,
    )


class StepBuilder:
    """Assembles common steps for authoring tools.

    Ids are sequential per builder (``analyze-1``, ``send-2``, ``label-3``), so steps from
    one builder never collide within a plan.
    """

    def __init__(self) -> None:
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def analysis(self, prompt: str, *, use_trigger_email: bool = True) -> RunAnalysisStep:
        return RunAnalysisStep(
            id=self._next_id("analyze"),
            inputs=AnalysisInputs(prompt=prompt, use_trigger_email=use_trigger_email),
        )

    def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        *,
        after: str | None = None,
    ) -> SendEmailStep:
        """``after`` makes the step run only when that earlier step succeeded."""

        return SendEmailStep(
            id=self._next_id("send"),
            inputs=SendEmailInputs(to=to, subject=subject, body=body),
            condition=_succeeded(after) if after else None,
        )

    def add_labels(
        self,
        label_ids: list[str],
        *,
        email_id: str = "{{trigger.email_id}}",
        after: str | None = None,
    ) -> AddLabelsStep:
        return AddLabelsStep(
            id=self._next_id("label"),
            inputs=LabelInputs(email_id=email_id, label_ids=label_ids, operation="add"),
            condition=_succeeded(after) if after else None,
        )

    @staticmethod
    def conditional(step: Step, path: str, operator: Operator, value: Any = None) -> Step:
        condition = StepCondition(
            type="previous_step_output", path=path, operator=operator, value=value
        )
        return step.model_copy(update={"condition": condition})
