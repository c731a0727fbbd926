"""Plan definitions: triggers, steps, conditions and error policies.

Plans are user-authored and persisted, so every type here is a frozen pydantic model
that rejects unknown keys. Steps form a closed union tagged by ``action``: each action
carries its own inputs model, and required inputs are enforced when the step is built.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .events import EmailMessage

ActionName = Literal[
    "send_email",
    "schedule_email",
    "run_analysis",
    "add_labels",
    "remove_labels",
    "listen_for_senders",
]

ACTION_NAMES: tuple[str, ...] = (
    "send_email",
    "schedule_email",
    "run_analysis",
    "add_labels",
    "remove_labels",
    "listen_for_senders",
)

_DAILY_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class _Definition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# --- Triggers ---------------------------------------------------------------


class EmailFromTrigger(_Definition):
    type: Literal["email_from"] = "email_from"
    from_address: str = Field(min_length=1)


class EmailSubjectTrigger(_Definition):
    type: Literal["email_subject"] = "email_subject"
    subject: str = Field(min_length=1)
    match_type: Literal["exact", "contains", "regex"] = "contains"


class TimerTrigger(_Definition):
    """Either a periodic interval or a daily wall-clock time ("HH:MM")."""

    type: Literal["timer"] = "timer"
    interval_minutes: float | None = Field(default=None, gt=0)
    specific_time: str | None = None
    timezone: str | None = None

    @field_validator("specific_time")
    @classmethod
    def _check_specific_time(cls, value: str | None) -> str | None:
        if value is not None and not _DAILY_TIME_RE.match(value.strip()):
            raise ValueError("specific_time must be a 24h wall-clock time such as '15:30'")
        return value.strip() if value is not None else None

    @model_validator(mode="after")
    def _exactly_one_schedule(self) -> TimerTrigger:
        if (self.interval_minutes is None) == (self.specific_time is None):
            raise ValueError("timer trigger needs exactly one of interval_minutes or specific_time")
        return self


Trigger = Annotated[
    EmailFromTrigger | EmailSubjectTrigger | TimerTrigger,
    Field(discriminator="type"),
]


# --- Conditions and error policy -------------------------------------------


class StepCondition(_Definition):
    """Decides whether a step runs.

    ``path`` is dotted; its first segment is a step id or the literal ``trigger``.
    """

    type: Literal["always", "never", "previous_step_output"] = "always"
    path: str | None = None
    operator: Literal["equals", "contains", "exists", "not_exists"] = "exists"
    value: Any = None

    @model_validator(mode="after")
    def _path_required(self) -> StepCondition:
        if self.type == "previous_step_output" and not (self.path or "").strip():
            raise ValueError("previous_step_output conditions need a path")
        return self


class ErrorPolicy(_Definition):
    """What happens when a step's action fails.

    ``retry_count`` is the total number of attempts; 0 and 1 both mean a single attempt.
    """

    action: Literal["stop", "continue", "retry", "fallback_step"] = "stop"
    retry_count: int = Field(default=0, ge=0)
    retry_delay_ms: int = Field(default=0, ge=0)
    notify_email: str | None = None
    fallback_step_id: str | None = None

    @property
    def max_attempts(self) -> int:
        return max(1, self.retry_count)


DEFAULT_ERROR_POLICY = ErrorPolicy()


# --- Action inputs ----------------------------------------------------------


class SendEmailInputs(_Definition):
    to: list[str] = Field(min_length=1)
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    is_html: bool = False
    reply_to: str | None = None


class ScheduleEmailInputs(SendEmailInputs):
    # ISO-8601, or a reference that resolves to one.
    scheduled_time: str = Field(min_length=1)


class AnalysisInputs(_Definition):
    prompt: str = Field(min_length=1)
    use_trigger_email: bool = False
    emails: list[EmailMessage] = Field(default_factory=list)
    data: Any = None


class LabelInputs(_Definition):
    email_id: str = Field(default="{{trigger.email_id}}", min_length=1)
    label_ids: list[str] = Field(min_length=1)
    operation: Literal["add", "remove", "set"]


class ListenInputs(_Definition):
    senders: list[str] = Field(min_length=1)
    subject: str | None = None
    labels: list[str] = Field(default_factory=list)


# --- Steps ------------------------------------------------------------------


class _StepBase(_Definition):
    id: str = Field(min_length=1)
    condition: StepCondition | None = None
    on_error: ErrorPolicy | None = None

    @property
    def error_policy(self) -> ErrorPolicy:
        return self.on_error or DEFAULT_ERROR_POLICY


class SendEmailStep(_StepBase):
    action: Literal["send_email"] = "send_email"
    inputs: SendEmailInputs


class ScheduleEmailStep(_StepBase):
    action: Literal["schedule_email"] = "schedule_email"
    inputs: ScheduleEmailInputs


class RunAnalysisStep(_StepBase):
    action: Literal["run_analysis"] = "run_analysis"
    inputs: AnalysisInputs


class AddLabelsStep(_StepBase):
    action: Literal["add_labels"] = "add_labels"
    inputs: LabelInputs

    @field_validator("inputs")
    @classmethod
    def _adds_or_sets(cls, value: LabelInputs) -> LabelInputs:
        if value.operation == "remove":
            raise ValueError('add_labels steps take operation "add" or "set"')
        return value


class RemoveLabelsStep(_StepBase):
    action: Literal["remove_labels"] = "remove_labels"
    inputs: LabelInputs

    @field_validator("inputs")
    @classmethod
    def _removes(cls, value: LabelInputs) -> LabelInputs:
        if value.operation != "remove":
            raise ValueError('remove_labels steps take operation "remove"')
        return value


class ListenForSendersStep(_StepBase):
    action: Literal["listen_for_senders"] = "listen_for_senders"
    inputs: ListenInputs


Step = Annotated[
    SendEmailStep
    | ScheduleEmailStep
    | RunAnalysisStep
    | AddLabelsStep
    | RemoveLabelsStep
    | ListenForSendersStep,
    Field(discriminator="action"),
]


# --- Plans ------------------------------------------------------------------


class PlanDraft(_Definition):
    """A plan as authored, before it has an identity."""

    name: str = Field(min_length=1)
    description: str | None = None
    trigger: Trigger
    steps: list[Step] = Field(min_length=1)
    enabled: bool = True


class Plan(PlanDraft):
    id: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]

    def find_step(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None
