"""Directory-backed persistence for plans.

One JSON file per plan (``<plan id>.json``), mirrored in memory. Reads are served from
memory; writes go to disk first and reach the mirror only once the file is in place.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import Plan

logger = logging.getLogger(__name__)


class PlanStore:
    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._plans: dict[str, Plan] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    def initialize(self) -> None:
        """Load every plan file; unreadable files are logged and skipped."""

        self._directory.mkdir(parents=True, exist_ok=True)
        self._plans.clear()

        for path in sorted(self._directory.glob("*.json")):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
                plan = Plan.model_validate(raw)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(
                    "Skipping unreadable workflow file",
                    extra={"path": str(path), "error": str(e)},
                )
                continue
            self._plans[plan.id] = plan

        logger.info(
            "Workflows loaded",
            extra={"path": str(self._directory), "count": len(self._plans)},
        )

    def save_workflow(self, plan: Plan) -> Plan:
        path = self._path_for(plan.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(
            json.dumps(plan.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        os.replace(tmp, path)

        self._plans[plan.id] = plan
        logger.debug("Workflow saved", extra={"plan_id": plan.id, "path": str(path)})
        return plan

    def get_workflow(self, plan_id: str) -> Plan | None:
        return self._plans.get(plan_id)

    def list_workflows(self) -> list[Plan]:
        return list(self._plans.values())

    def get_enabled_workflows(self) -> list[Plan]:
        return [plan for plan in self._plans.values() if plan.enabled]

    def update_workflow(self, plan_id: str, updates: dict[str, Any]) -> Plan:
        """Merge top-level fields into a stored plan and persist it.

        The id and creation time are kept; ``updated_at`` is refreshed.
        """

        current = self._plans.get(plan_id)
        if current is None:
            raise KeyError(plan_id)

        merged = {
            **current.model_dump(mode="json"),
            **updates,
            "id": current.id,
            "created_at": current.created_at,
            "updated_at": datetime.now(tz=UTC),
        }
        return self.save_workflow(Plan.model_validate(merged))

    def delete_workflow(self, plan_id: str) -> bool:
        path = self._path_for(plan_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(
                "Workflow file already missing", extra={"plan_id": plan_id, "path": str(path)}
            )
        removed = self._plans.pop(plan_id, None)
        return removed is not None

    def _path_for(self, plan_id: str) -> Path:
        if not plan_id or "/" in plan_id or "\\" in plan_id or plan_id.startswith("."):
            raise ValueError(f"Invalid workflow id: {plan_id!r}")
        return self._directory / f"{plan_id}.json"
