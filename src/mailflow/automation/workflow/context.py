from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .actions import ActionResult
from .events import EmailMessage, TriggerData
from .references import MISSING, TRIGGER_ROOT, navigate, split_reference


@dataclass
class ExecutionContext:
    """Per-execution data available to references and conditions.

    Grows monotonically: only successful steps add an output, so a reference to a
    skipped or failed step resolves to ``MISSING``.
    """

    trigger: TriggerData = field(default_factory=TriggerData)
    outputs: dict[str, ActionResult] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._trigger_payload: dict[str, Any] = self.trigger.to_payload()
        self._output_payloads: dict[str, dict[str, Any]] = {
            step_id: result.to_json() for step_id, result in self.outputs.items()
        }

    @property
    def trigger_email(self) -> EmailMessage | None:
        return self.trigger.email

    @property
    def trigger_payload(self) -> dict[str, Any]:
        return self._trigger_payload

    def record(self, step_id: str, result: ActionResult) -> None:
        self.outputs[step_id] = result
        self._output_payloads[step_id] = result.to_json()

    def has_output(self, step_id: str) -> bool:
        return step_id in self.outputs

    def lookup(self, reference: str) -> Any:
        """Resolve a dotted reference, or return ``MISSING``."""

        root, path = split_reference(reference)
        if root == TRIGGER_ROOT:
            return navigate(self._trigger_payload, path)
        if root not in self._output_payloads:
            return MISSING
        return navigate(self._output_payloads[root], path)
