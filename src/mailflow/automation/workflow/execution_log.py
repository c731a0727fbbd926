"""Bounded, in-memory log of workflow events.

This is the only trace of a run that outlives the run itself. Entries are tagged with
plan, execution and step ids so they can be sliced per execution or per plan, and each
entry is mirrored to standard logging so the JSON formatter can ship it elsewhere.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

LogLevel = Literal["debug", "info", "warning", "error"]

_STDLIB_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

DEFAULT_MAX_ENTRIES = 1000


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)


class LogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    level: LogLevel
    message: str
    plan_id: str | None = None
    execution_id: str | None = None
    step_id: str | None = None
    data: Any = None


class ExecutionLog:
    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._logger = logger or logging.getLogger("mailflow.workflow")

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or DEFAULT_MAX_ENTRIES

    def log(
        self,
        level: LogLevel,
        message: str,
        data: Any = None,
        *,
        plan_id: str | None = None,
        execution_id: str | None = None,
        step_id: str | None = None,
    ) -> LogEntry:
        entry = LogEntry(
            level=level,
            message=message,
            plan_id=plan_id,
            execution_id=execution_id,
            step_id=step_id,
            data=data,
        )
        self._entries.append(entry)

        extra: dict[str, Any] = {
            key: value
            for key, value in (
                ("plan_id", plan_id),
                ("execution_id", execution_id),
                ("step_id", step_id),
            )
            if value is not None
        }
        if data is not None:
            extra["data"] = data
        self._logger.log(_STDLIB_LEVELS[level], message, extra=extra)
        return entry

    def debug(self, message: str, data: Any = None, **ids: str | None) -> LogEntry:
        return self.log("debug", message, data, **ids)

    def info(self, message: str, data: Any = None, **ids: str | None) -> LogEntry:
        return self.log("info", message, data, **ids)

    def warning(self, message: str, data: Any = None, **ids: str | None) -> LogEntry:
        return self.log("warning", message, data, **ids)

    def error(self, message: str, data: Any = None, **ids: str | None) -> LogEntry:
        return self.log("error", message, data, **ids)

    def for_execution(self, execution_id: str) -> list[LogEntry]:
        return [e for e in self._entries if e.execution_id == execution_id]

    def for_plan(self, plan_id: str) -> list[LogEntry]:
        return [e for e in self._entries if e.plan_id == plan_id]

    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def export_json(self) -> str:
        payload = [e.model_dump() for e in self._entries]
        return json.dumps(payload, indent=2, ensure_ascii=False, default=_jsonable)

    def __len__(self) -> int:
        return len(self._entries)
