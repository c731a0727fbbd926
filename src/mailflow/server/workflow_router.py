"""Workflow API routes (mounted at /api)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from mailflow import __version__
from mailflow.automation.workflow.events import EmailMessage
from mailflow.automation.workflow.service import (
    InvalidPlanError,
    WorkflowNotFoundError,
    WorkflowService,
)
from mailflow.automation.workflow.validator import suggest_fixes
from mailflow.server.models import DispatchResult, ExecuteRequest, HealthStatus, ValidationReport

logger = logging.getLogger(__name__)

router = APIRouter()


def _service(request: Request) -> WorkflowService:
    service = getattr(request.app.state, "service", None)
    if not isinstance(service, WorkflowService):
        # This should never happen for the real app, but keeps the API fail-fast.
        raise HTTPException(status_code=500, detail="Workflow service not configured")
    return service


def _invalid(e: InvalidPlanError) -> HTTPException:
    report = ValidationReport(
        valid=False,
        errors=e.result.errors,
        warnings=e.result.warnings,
        suggestions=suggest_fixes(e.result.errors),
    )
    return HTTPException(status_code=422, detail=report.model_dump(mode="json"))


@router.get("/health", response_model=HealthStatus)
def health(request: Request) -> HealthStatus:
    service = _service(request)
    return HealthStatus(
        status="ok",
        version=__version__,
        workflows=len(service.list_workflows()),
        registered=len(service.triggers.registered_ids),
    )


@router.get("/workflows")
def list_workflows(request: Request) -> list[dict[str, Any]]:
    return [plan.model_dump(mode="json") for plan in _service(request).list_workflows()]


@router.post("/workflows", status_code=201)
async def create_workflow(request: Request, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        plan = await _service(request).create_workflow(payload)
    except InvalidPlanError as e:
        raise _invalid(e) from e
    return plan.model_dump(mode="json")


@router.post("/workflows/validate", response_model=ValidationReport)
def validate_workflow(request: Request, payload: dict[str, Any]) -> ValidationReport:
    result = _service(request).validate(payload)
    return ValidationReport(
        valid=result.valid,
        errors=result.errors,
        warnings=result.warnings,
        suggestions=suggest_fixes(result.errors),
    )


@router.get("/workflows/{plan_id}")
def get_workflow(request: Request, plan_id: str) -> dict[str, Any]:
    plan = _service(request).get_workflow(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return plan.model_dump(mode="json")


@router.put("/workflows/{plan_id}")
async def update_workflow(
    request: Request, plan_id: str, payload: dict[str, Any]
) -> dict[str, Any]:
    try:
        plan = await _service(request).update_workflow(plan_id, payload)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail="Workflow not found") from e
    except InvalidPlanError as e:
        raise _invalid(e) from e
    return plan.model_dump(mode="json")


@router.delete("/workflows/{plan_id}")
async def delete_workflow(request: Request, plan_id: str) -> dict[str, str]:
    try:
        await _service(request).delete_workflow(plan_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail="Workflow not found") from e
    return {"deleted": plan_id}


@router.post("/workflows/{plan_id}/execute")
async def execute_workflow(
    request: Request, plan_id: str, payload: ExecuteRequest | None = None
) -> dict[str, Any]:
    trigger_data = payload.trigger_data if payload is not None else None
    try:
        execution = await _service(request).execute_workflow(plan_id, trigger_data)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail="Workflow not found") from e
    except ValidationError as e:
        detail = e.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=detail) from e
    return execution.model_dump(mode="json")


@router.post("/emails", response_model=DispatchResult)
async def incoming_email(
    request: Request, email: EmailMessage, wait: bool = False
) -> DispatchResult:
    """Dispatch an incoming email to every matching workflow.

    Executions run in the background; ``wait=true`` holds the response until they finish.
    """

    tasks = await _service(request).handle_incoming_email(email)
    if not wait:
        return DispatchResult(matched=len(tasks))

    executions = await asyncio.gather(*tasks)
    return DispatchResult(
        matched=len(tasks),
        execution_ids=[execution.id for execution in executions],
    )


@router.get("/executions/{execution_id}/logs")
def execution_logs(request: Request, execution_id: str) -> list[dict[str, Any]]:
    entries = _service(request).get_execution_logs(execution_id)
    return [entry.model_dump(mode="json") for entry in entries]


@router.get("/workflows/{plan_id}/logs")
def workflow_logs(request: Request, plan_id: str) -> list[dict[str, Any]]:
    entries = _service(request).get_workflow_logs(plan_id)
    return [entry.model_dump(mode="json") for entry in entries]


@router.get("/logs")
def all_logs(request: Request) -> list[dict[str, Any]]:
    return [entry.model_dump(mode="json") for entry in _service(request).get_all_logs()]


@router.get("/logs/export", response_class=PlainTextResponse)
def export_logs(request: Request) -> PlainTextResponse:
    return PlainTextResponse(_service(request).export_all_logs(), media_type="application/json")


@router.delete("/logs")
def clear_logs(request: Request) -> dict[str, str]:
    _service(request).clear_logs()
    logger.info("Execution log cleared")
    return {"status": "cleared"}
