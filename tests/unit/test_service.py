"""Unit tests for the workflow service facade."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from conftest import ScriptedActions, analysis_step, make_email, send_step

from mailflow.automation.workflow.execution import ExecutionStatus
from mailflow.automation.workflow.models import PlanDraft
from mailflow.automation.workflow.service import (
    InvalidPlanError,
    WorkflowNotFoundError,
    WorkflowService,
)
from mailflow.automation.workflow.store import PlanStore


def _draft(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": "Report triage",
        "trigger": {"type": "email_subject", "subject": "analyze"},
        "steps": [
            analysis_step("classify"),
            send_step(
                "notify",
                inputs={
                    "to": ["boss@example.com"],
                    "subject": "Triage",
                    "body": "Result: {{classify.data}}",
                },
            ),
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def service(scripted_actions: ScriptedActions, state_dir: Path) -> WorkflowService:
    return WorkflowService(scripted_actions, PlanStore(state_dir / "workflows"))


@pytest.mark.asyncio
async def test_create_assigns_identity_persists_and_registers(
    service: WorkflowService, state_dir: Path
) -> None:
    await service.initialize()
    plan = await service.create_workflow({**_draft(), "id": "ignored"})

    assert plan.id.startswith("workflow-")
    assert plan.id != "ignored"
    assert service.get_workflow(plan.id) == plan
    assert [p.id for p in service.list_workflows()] == [plan.id]
    assert service.triggers.is_registered(plan.id)

    raw = json.loads((state_dir / "workflows" / f"{plan.id}.json").read_text(encoding="utf-8"))
    assert raw["name"] == "Report triage"


@pytest.mark.asyncio
async def test_create_accepts_a_draft_model(service: WorkflowService) -> None:
    await service.initialize()
    plan = await service.create_workflow(PlanDraft.model_validate(_draft()))
    assert plan.steps[0].id == "classify"


@pytest.mark.asyncio
async def test_create_rejects_invalid_plans_without_saving(service: WorkflowService) -> None:
    await service.initialize()
    notify = send_step(
        "notify",
        inputs={"to": ["boss@example.com"], "subject": "x", "body": "{{later.data}}"},
    )
    broken = _draft(steps=[notify])

    with pytest.raises(InvalidPlanError) as excinfo:
        await service.create_workflow(broken)

    assert not excinfo.value.result.valid
    assert "later" in str(excinfo.value)
    assert service.list_workflows() == []
    assert service.triggers.registered_ids == []


@pytest.mark.asyncio
async def test_update_revalidates_and_reregisters(service: WorkflowService) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft())

    updated = await service.update_workflow(plan.id, {"name": "Renamed"})
    assert updated.name == "Renamed"
    assert updated.created_at == plan.created_at
    assert service.triggers.is_registered(plan.id)

    disabled = await service.update_workflow(plan.id, {"enabled": False})
    assert not disabled.enabled
    assert not service.triggers.is_registered(plan.id)


@pytest.mark.asyncio
async def test_invalid_update_leaves_plan_untouched(service: WorkflowService) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft())

    with pytest.raises(InvalidPlanError):
        await service.update_workflow(plan.id, {"steps": [send_step("a"), send_step("a")]})

    assert service.get_workflow(plan.id) == plan
    assert service.triggers.is_registered(plan.id)


@pytest.mark.asyncio
async def test_failed_write_keeps_plan_registered(
    service: WorkflowService, monkeypatch: pytest.MonkeyPatch
) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft())

    def _disk_full(_plan: Any) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(service._store, "save_workflow", _disk_full)
    with pytest.raises(OSError):
        await service.update_workflow(plan.id, {"name": "Renamed"})

    assert service.get_workflow(plan.id) == plan
    assert service.triggers.is_registered(plan.id)


@pytest.mark.asyncio
async def test_delete_unregisters_and_removes(service: WorkflowService, state_dir: Path) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft())

    await service.delete_workflow(plan.id)

    assert service.get_workflow(plan.id) is None
    assert not service.triggers.is_registered(plan.id)
    assert not (state_dir / "workflows" / f"{plan.id}.json").exists()


@pytest.mark.asyncio
async def test_unknown_plan_ids_raise(service: WorkflowService) -> None:
    await service.initialize()
    with pytest.raises(WorkflowNotFoundError) as excinfo:
        await service.execute_workflow("missing")
    assert excinfo.value.plan_id == "missing"

    with pytest.raises(WorkflowNotFoundError):
        await service.update_workflow("missing", {"name": "x"})
    with pytest.raises(WorkflowNotFoundError):
        await service.delete_workflow("missing")


@pytest.mark.asyncio
async def test_execute_accepts_trigger_mapping(
    service: WorkflowService, scripted_actions: ScriptedActions
) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft())

    execution = await service.execute_workflow(plan.id, {"email": make_email().to_payload()})

    assert execution.status is ExecutionStatus.COMPLETED
    assert execution.trigger_data is not None
    assert execution.trigger_data["email_id"] == "email-1"
    assert scripted_actions.count("run_analysis") == 1
    assert scripted_actions.inputs_for("send_email")[0].body == (
        'Result: {"action": "run_analysis"}'
    )


@pytest.mark.asyncio
async def test_execute_runs_disabled_plans_on_demand(service: WorkflowService) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft(enabled=False))

    execution = await service.execute_workflow(plan.id)

    assert execution.status is ExecutionStatus.COMPLETED
    assert not service.triggers.is_registered(plan.id)


@pytest.mark.asyncio
async def test_incoming_email_dispatches_and_logs_are_queryable(service: WorkflowService) -> None:
    await service.initialize()
    plan = await service.create_workflow(_draft())

    tasks = await service.handle_incoming_email(make_email())
    assert len(tasks) == 1
    (execution,) = await service.drain()

    by_execution = service.get_execution_logs(execution.id)
    assert by_execution
    assert all(entry.execution_id == execution.id for entry in by_execution)
    assert service.get_workflow_logs(plan.id) == by_execution
    assert len(service.get_all_logs()) == len(by_execution)

    exported = json.loads(service.export_all_logs())
    assert exported[0]["message"] == "Workflow execution started"

    service.clear_logs()
    assert service.get_all_logs() == []


@pytest.mark.asyncio
async def test_initialize_registers_only_enabled_stored_plans(
    scripted_actions: ScriptedActions, state_dir: Path
) -> None:
    first = WorkflowService(scripted_actions, PlanStore(state_dir / "workflows"))
    await first.initialize()
    kept = await first.create_workflow(_draft())
    paused = await first.create_workflow(_draft(enabled=False))
    first.shutdown()

    second = WorkflowService(scripted_actions, PlanStore(state_dir / "workflows"))
    await second.initialize()

    assert {p.id for p in second.list_workflows()} == {kept.id, paused.id}
    assert second.triggers.registered_ids == [kept.id]
    second.shutdown()
