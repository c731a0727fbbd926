from __future__ import annotations

from typing import Any

from .context import ExecutionContext
from .models import StepCondition
from .references import MISSING


def evaluate_condition(condition: StepCondition | None, context: ExecutionContext) -> bool:
    """Policy: (condition, context) -> should the step run.

    A missing condition means "always". It must NOT call the capability port.
    """

    if condition is None or condition.type == "always":
        return True
    if condition.type == "never":
        return False

    actual = context.lookup(condition.path or "")
    return compare_values(actual, condition.operator, condition.value)


def compare_values(actual: Any, operator: str, expected: Any) -> bool:
    present = actual is not MISSING and actual is not None
    if operator == "exists":
        return present
    if operator == "not_exists":
        return not present
    if operator == "equals":
        return present and actual == expected
    if operator == "contains":
        if not present:
            return False
        needle = str(expected)
        if isinstance(actual, list | tuple):
            return any(needle in str(item) for item in actual)
        return needle in str(actual)
    raise ValueError(f"Unknown condition operator: {operator}")
