from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from .models import (
    AnalysisInputs,
    LabelInputs,
    ListenInputs,
    ScheduleEmailInputs,
    SendEmailInputs,
)


class ActionResult(BaseModel):
    """Envelope returned by every capability operation.

    This is also what later steps see when they reference a step's output:
    ``{{step.success}}``, ``{{step.data}}``.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, code: str, message: str) -> ActionResult:
        return cls(success=False, error=f"{code}: {message}")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MailActions(Protocol):
    """Capability port: the real-world effects a step can have.

    Implementations (a Gmail-backed service, the in-memory double) live outside the
    engine and are injected into it. Each operation either returns an ``ActionResult``
    or raises; both ``success=False`` and an exception count as a failed attempt.
    """

    async def send_email(self, inputs: SendEmailInputs) -> ActionResult: ...

    async def schedule_email(self, inputs: ScheduleEmailInputs) -> ActionResult: ...

    async def run_analysis(self, inputs: AnalysisInputs) -> ActionResult: ...

    async def add_labels(self, inputs: LabelInputs) -> ActionResult: ...

    async def remove_labels(self, inputs: LabelInputs) -> ActionResult: ...

    async def listen_for_senders(self, inputs: ListenInputs) -> ActionResult: ...


# Action name -> capability method name. Anything missing here is an authoring bug.
ACTION_METHODS: dict[str, str] = {
    "send_email": "send_email",
    "schedule_email": "schedule_email",
    "run_analysis": "run_analysis",
    "add_labels": "add_labels",
    "remove_labels": "remove_labels",
    "listen_for_senders": "listen_for_senders",
}
