from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .actions import ActionResult


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepResult(BaseModel):
    step_id: str
    status: StepStatus
    output: ActionResult | None = None
    error: str | None = None
    attempts: int = 0
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def skipped(cls, step_id: str) -> StepResult:
        now = _utc_now()
        return cls(step_id=step_id, status=StepStatus.SKIPPED, started_at=now, completed_at=now)

    @property
    def duration_ms(self) -> int:
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


class Execution(BaseModel):
    """One run of a plan. Held in memory only; the execution log is the durable trace."""

    id: str
    plan_id: str
    trigger_type: str
    trigger_data: dict[str, Any] | None = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None
    step_results: list[StepResult] = Field(default_factory=list)

    def count(self, status: StepStatus) -> int:
        return sum(1 for result in self.step_results if result.status == status)

    def result_for(self, step_id: str) -> StepResult | None:
        for result in self.step_results:
            if result.step_id == step_id:
                return result
        return None

    @property
    def duration_ms(self) -> int | None:
        if self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)
