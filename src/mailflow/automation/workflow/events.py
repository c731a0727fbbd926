from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EmailAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    name: str | None = None


class EmailMessage(BaseModel):
    """A normalized email as delivered by the mail sync subsystem.

    The sender is exposed as ``from`` in JSON (and in reference paths such as
    ``{{trigger.email.from.email}}``); ``from`` is reserved in Python, hence ``from_``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    from_: EmailAddress = Field(alias="from")
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    date: datetime | None = None
    labels: list[str] = Field(default_factory=list)
    is_read: bool = False
    has_attachment: bool = False
    thread_id: str | None = None


class TriggerData(BaseModel):
    """A signal emitted by a trigger.

    Triggers detect external facts (new mail, timers) and emit this payload.
    Triggers never perform work.
    """

    model_config = ConfigDict(frozen=True)

    email_id: str | None = None
    email: EmailMessage | None = None
    triggered_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_email_id(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("email_id") is not None:
            return data
        email = data.get("email")
        if isinstance(email, EmailMessage):
            return {**data, "email_id": email.id}
        if isinstance(email, dict) and isinstance(email.get("id"), str):
            return {**data, "email_id": email["id"]}
        return data

    @classmethod
    def from_email(cls, email: EmailMessage) -> TriggerData:
        return cls(email_id=email.id, email=email, triggered_at=datetime.now(tz=UTC))

    def to_payload(self) -> dict[str, Any]:
        """JSON shape used for ``{{trigger...}}`` references. Absent fields are omitted."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
