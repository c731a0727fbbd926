"""Unit tests for the command line interface."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from conftest import make_plan, send_step

import mailflow.automation.main as cli
from mailflow.automation.workflow.store import PlanStore

EXAMPLE_PLAN = Path(__file__).resolve().parents[2] / "examples" / "urgent_triage.json"


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MAILFLOW_STATE_PATH", str(tmp_path / "state"))
    monkeypatch.delenv("MAILFLOW_MAX_LOG_ENTRIES", raising=False)
    # Keep pytest's log capture handlers on the root logger.
    monkeypatch.setattr(cli, "configure_logging", lambda _level: None)


def _write_plan(path: Path, plan: dict[str, Any]) -> Path:
    path.write_text(json.dumps(plan), encoding="utf-8")
    return path


def _broken_plan() -> dict[str, Any]:
    return {
        "name": "Broken",
        "trigger": {"type": "email_subject", "subject": "x"},
        "steps": [
            {
                "id": "notify",
                "action": "send_email",
                "inputs": {"to": ["a@example.com"], "subject": "s", "body": "{{ghost.data}}"},
            }
        ],
    }


def test_validate_example_plan(capsys) -> None:
    assert cli.main(["validate", str(EXAMPLE_PLAN)]) == 0
    assert "Plan is valid." in capsys.readouterr().out


def test_validate_reports_errors_and_fixes(capsys, tmp_path: Path) -> None:
    path = _write_plan(tmp_path / "broken.json", _broken_plan())

    assert cli.main(["validate", str(path)]) == 1

    out = capsys.readouterr().out
    assert "Plan has 1 error(s):" in out
    assert '[notify] inputs.body: Referenced step "ghost"' in out
    assert 'Move step "notify" after the step it references' in out


def test_show_prints_outline(capsys) -> None:
    assert cli.main(["show", str(EXAMPLE_PLAN)]) == 0

    out = capsys.readouterr().out
    assert "Workflow: Urgent triage (dry-run)" in out
    assert "2. label [add_labels]" in out
    assert "if: classify.data contains 'URGENT'" in out


def test_show_refuses_invalid_plans(capsys, tmp_path: Path) -> None:
    path = _write_plan(tmp_path / "broken.json", _broken_plan())
    assert cli.main(["show", str(path)]) == 1
    assert "Workflow:" not in capsys.readouterr().out


def test_run_dry_runs_with_sample_trigger(capsys, tmp_path: Path) -> None:
    export = tmp_path / "out" / "logs.json"

    assert cli.main(["run", str(EXAMPLE_PLAN), "--export-logs", str(export)]) == 0

    out = capsys.readouterr().out
    assert "Status: completed" in out
    assert "1. [ok] classify [run_analysis]" in out
    assert "2. [skipped] label [add_labels]" in out
    entries = json.loads(export.read_text(encoding="utf-8"))
    assert entries[0]["message"] == "Workflow execution started"


def test_run_with_trigger_file_and_failing_step(capsys, tmp_path: Path) -> None:
    plan = {
        "name": "Schedule",
        "trigger": {"type": "email_from", "from_address": "client@example.com"},
        "steps": [
            {
                "id": "later",
                "action": "schedule_email",
                "inputs": {
                    "to": ["{{trigger.email.from.email}}"],
                    "subject": "Re: {{trigger.email.subject}}",
                    "body": "Following up",
                    "scheduled_time": "2000-01-01T00:00:00Z",
                },
            }
        ],
    }
    trigger = {
        "email": {
            "id": "email-9",
            "from": {"email": "client@example.com"},
            "subject": "Quote",
        }
    }
    plan_path = _write_plan(tmp_path / "plan.json", plan)
    trigger_path = _write_plan(tmp_path / "trigger.json", trigger)

    assert cli.main(["run", str(plan_path), "--trigger", str(trigger_path)]) == 1

    out = capsys.readouterr().out
    assert "Status: failed" in out
    assert "Trigger: email_from client@example.com -> Quote" in out
    assert "error: INVALID_SCHEDULE_TIME" in out


def test_list_shows_stored_workflows(capsys, tmp_path: Path) -> None:
    assert cli.main(["list"]) == 0
    assert "No workflows in" in capsys.readouterr().out

    store = PlanStore(tmp_path / "state" / "workflows")
    store.save_workflow(make_plan([send_step("s")], id="daily", name="Daily digest"))
    store.save_workflow(make_plan([send_step("s")], id="paused", enabled=False))

    assert cli.main(["list"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert 'daily  Daily digest  [enabled]  email subject contains "analyze"' in lines
    assert any(line.startswith("paused") and "[disabled]" in line for line in lines)


def test_unreadable_plan_file_is_a_usage_error(capsys, tmp_path: Path) -> None:
    assert cli.main(["validate", str(tmp_path / "missing.json")]) == 2

    not_object = tmp_path / "list.json"
    not_object.write_text("[1, 2]", encoding="utf-8")
    assert cli.main(["validate", str(not_object)]) == 2
    assert "must contain a JSON object" in capsys.readouterr().err


def test_bad_configuration_exits_with_2(monkeypatch, capsys) -> None:
    monkeypatch.setenv("MAILFLOW_MAX_LOG_ENTRIES", "0")
    assert cli.main(["list"]) == 2
    assert "Configuration error" in capsys.readouterr().err
