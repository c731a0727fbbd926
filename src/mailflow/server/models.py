"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from mailflow.automation.workflow.validator import ValidationIssue, ValidationWarning


class ValidationReport(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ExecuteRequest(BaseModel):
    # Trigger payload as accepted by TriggerData: email_id, email, triggered_at.
    trigger_data: dict[str, Any] | None = None


class DispatchResult(BaseModel):
    matched: int
    execution_ids: list[str] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: str
    version: str
    workflows: int
    registered: int
