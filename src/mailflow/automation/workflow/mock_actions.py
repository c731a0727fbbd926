"""Deterministic in-memory capability port.

Used by the CLI dry runs, the HTTP server when no real mail backend is wired in, and the
tests. It validates inputs the way a real backend would and records every call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from .actions import ActionResult
from .events import EmailAddress, EmailMessage
from .models import AnalysisInputs, LabelInputs, ListenInputs, ScheduleEmailInputs, SendEmailInputs

logger = logging.getLogger(__name__)

Analyzer = Callable[[AnalysisInputs], Any]

OWN_ADDRESS = "me@example.com"


def canned_analysis(inputs: AnalysisInputs) -> Any:
    """Keyword-driven stand-in for the language model."""

    prompt = inputs.prompt.lower()
    emails = inputs.emails

    if emails:
        if "summary" in prompt or "summarize" in prompt:
            lines = [f"- From {e.from_.email}: {e.subject}" for e in emails]
            return f"Summary of {len(emails)} emails:\n" + "\n".join(lines)
        if "count" in prompt or "how many" in prompt:
            return [
                f"Total emails: {len(emails)}",
                f"Unread emails: {sum(1 for e in emails if not e.is_read)}",
                f"Emails with attachments: {sum(1 for e in emails if e.has_attachment)}",
            ]
        if "sender" in prompt or "from" in prompt:
            return list(dict.fromkeys(e.from_.email for e in emails))

    results = [
        "Analysis result 1: Data processed successfully",
        "Analysis result 2: Patterns identified",
        "Analysis result 3: Recommendations generated",
    ]
    if "list" in prompt or "multiple" in prompt:
        return results
    return "\n".join(results)


def _parse_iso(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class RecordedCall:
    action: str
    inputs: BaseModel


@dataclass
class InMemoryMailActions:
    analyzer: Analyzer = canned_analysis
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))

    def __post_init__(self) -> None:
        self.inbox: dict[str, EmailMessage] = {}
        self.sent: dict[str, SendEmailInputs] = {}
        self.scheduled: dict[str, ScheduleEmailInputs] = {}
        self.listeners: dict[str, ListenInputs] = {}
        self.calls: list[RecordedCall] = []
        self._counter = 0

    def add_email(self, email: EmailMessage) -> None:
        self.inbox[email.id] = email

    def calls_for(self, action: str) -> list[BaseModel]:
        return [call.inputs for call in self.calls if call.action == action]

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def _record(self, action: str, inputs: BaseModel) -> None:
        self.calls.append(RecordedCall(action=action, inputs=inputs))
        logger.debug("Mail action called", extra={"action": action})

    async def send_email(self, inputs: SendEmailInputs) -> ActionResult:
        self._record("send_email", inputs)
        if not any(address.strip() for address in inputs.to):
            return ActionResult.failure("INVALID_RECIPIENT", "At least one recipient is required")
        if not inputs.subject.strip():
            return ActionResult.failure("INVALID_SUBJECT", "Subject is required")
        if not inputs.body.strip():
            return ActionResult.failure("INVALID_BODY", "Email body is required")

        message_id = self._next_id("msg")
        self.sent[message_id] = inputs
        self.inbox[message_id] = EmailMessage(
            id=message_id,
            from_=EmailAddress(email=OWN_ADDRESS, name="Me"),
            to=[EmailAddress(email=address) for address in inputs.to],
            cc=[EmailAddress(email=address) for address in inputs.cc],
            subject=inputs.subject,
            body=inputs.body,
            date=self.clock(),
            labels=["sent"],
            is_read=True,
            thread_id=f"thread-{inputs.reply_to}" if inputs.reply_to else None,
        )
        return ActionResult.ok({"message_id": message_id})

    async def schedule_email(self, inputs: ScheduleEmailInputs) -> ActionResult:
        self._record("schedule_email", inputs)
        when = _parse_iso(inputs.scheduled_time)
        if when is None:
            return ActionResult.failure(
                "INVALID_SCHEDULE_TIME", f"Not an ISO-8601 time: {inputs.scheduled_time}"
            )
        if when <= self.clock():
            return ActionResult.failure(
                "INVALID_SCHEDULE_TIME", "Scheduled time must be in the future"
            )

        scheduled_id = self._next_id("scheduled")
        self.scheduled[scheduled_id] = inputs
        return ActionResult.ok({"scheduled_id": scheduled_id})

    async def run_analysis(self, inputs: AnalysisInputs) -> ActionResult:
        self._record("run_analysis", inputs)
        return ActionResult.ok(self.analyzer(inputs))

    async def add_labels(self, inputs: LabelInputs) -> ActionResult:
        self._record("add_labels", inputs)
        email = self.inbox.get(inputs.email_id)
        if email is None:
            return ActionResult.failure("NOT_FOUND", f"Email {inputs.email_id} not found")

        if inputs.operation == "set":
            labels = list(dict.fromkeys(inputs.label_ids))
        else:
            labels = list(dict.fromkeys([*email.labels, *inputs.label_ids]))
        self.inbox[email.id] = email.model_copy(update={"labels": labels})
        return ActionResult.ok()

    async def remove_labels(self, inputs: LabelInputs) -> ActionResult:
        self._record("remove_labels", inputs)
        email = self.inbox.get(inputs.email_id)
        if email is None:
            return ActionResult.failure("NOT_FOUND", f"Email {inputs.email_id} not found")

        labels = [label for label in email.labels if label not in inputs.label_ids]
        self.inbox[email.id] = email.model_copy(update={"labels": labels})
        return ActionResult.ok()

    async def listen_for_senders(self, inputs: ListenInputs) -> ActionResult:
        self._record("listen_for_senders", inputs)
        listener_id = self._next_id("listener")
        self.listeners[listener_id] = inputs
        return ActionResult.ok({"listener_id": listener_id})
