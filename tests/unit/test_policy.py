"""Unit tests for step condition evaluation."""

from __future__ import annotations

import pytest

from mailflow.automation.workflow.actions import ActionResult
from mailflow.automation.workflow.context import ExecutionContext
from mailflow.automation.workflow.models import StepCondition
from mailflow.automation.workflow.policy import compare_values, evaluate_condition
from mailflow.automation.workflow.references import MISSING


def _context() -> ExecutionContext:
    context = ExecutionContext()
    context.record("classify", ActionResult.ok("URGENT: server down"))
    context.record("senders", ActionResult.ok(["alice@example.com", "bob@example.com"]))
    return context


def _condition(path: str, operator: str, value: object = None) -> StepCondition:
    return StepCondition(type="previous_step_output", path=path, operator=operator, value=value)


def test_missing_and_static_conditions() -> None:
    context = _context()
    assert evaluate_condition(None, context) is True
    assert evaluate_condition(StepCondition(type="always"), context) is True
    assert evaluate_condition(StepCondition(type="never"), context) is False


def test_contains_on_strings_and_lists() -> None:
    context = _context()
    assert evaluate_condition(_condition("classify.data", "contains", "URGENT"), context)
    assert not evaluate_condition(_condition("classify.data", "contains", "routine"), context)
    assert evaluate_condition(_condition("senders.data", "contains", "bob@"), context)
    assert not evaluate_condition(_condition("missing.data", "contains", "x"), context)


def test_equals_and_existence() -> None:
    context = _context()
    assert evaluate_condition(_condition("classify.success", "equals", True), context)
    assert not evaluate_condition(_condition("classify.success", "equals", False), context)
    assert evaluate_condition(_condition("classify.data", "exists"), context)
    assert evaluate_condition(_condition("skipped.data", "not_exists"), context)
    assert not evaluate_condition(_condition("skipped.success", "equals", None), context)


def test_compare_values_treats_none_as_absent() -> None:
    assert compare_values(None, "not_exists", None) is True
    assert compare_values(MISSING, "exists", None) is False
    with pytest.raises(ValueError):
        compare_values("x", "matches", "x")


def test_previous_step_output_requires_path() -> None:
    with pytest.raises(ValueError):
        StepCondition(type="previous_step_output", operator="exists")
