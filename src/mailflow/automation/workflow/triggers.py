from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .engine import WorkflowEngine
from .events import EmailMessage, TriggerData
from .execution import Execution
from .models import EmailFromTrigger, EmailSubjectTrigger, Plan, TimerTrigger

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DAY = timedelta(days=1)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def trigger_matches_email(trigger: object, email: EmailMessage) -> bool:
    """Case-insensitive match of an email against a plan's trigger.

    Timer triggers never match email. An invalid regex never matches.
    """

    if isinstance(trigger, EmailFromTrigger):
        return email.from_.email.strip().lower() == trigger.from_address.strip().lower()

    if isinstance(trigger, EmailSubjectTrigger):
        subject = email.subject.lower()
        wanted = trigger.subject.lower()
        if trigger.match_type == "exact":
            return subject == wanted
        if trigger.match_type == "regex":
            try:
                return re.search(trigger.subject, email.subject, re.IGNORECASE) is not None
            except re.error:
                return False
        return wanted in subject

    return False


def next_daily_occurrence(now: datetime, at: str) -> datetime:
    """Next time the wall clock reads ``at`` ("HH:MM"): today if still ahead, else tomorrow."""

    hour, minute = (int(part) for part in at.strip().split(":"))
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += DAY
    return candidate


class TriggerManager:
    """Owns the enabled plans and their timers, and dispatches matching plans.

    Dispatch is fire-and-forget: each match becomes an independent asyncio task. The
    manager keeps the tasks alive until they finish; ``drain`` is the only join point.
    """

    def __init__(self, engine: WorkflowEngine, *, clock: Clock | None = None) -> None:
        self._engine = engine
        self._clock = clock or _local_now
        self._plans: dict[str, Plan] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._in_flight: set[asyncio.Task[Execution]] = set()

    @property
    def registered_ids(self) -> list[str]:
        return list(self._plans)

    def is_registered(self, plan_id: str) -> bool:
        return plan_id in self._plans

    def has_timer(self, plan_id: str) -> bool:
        return plan_id in self._timers

    def register_workflow(self, plan: Plan) -> None:
        """Register an enabled plan; a disabled plan is ignored.

        Timer plans start their timer immediately, which needs a running event loop.
        """

        if not plan.enabled:
            logger.debug("Ignoring disabled workflow", extra={"plan_id": plan.id})
            return

        if plan.id in self._plans:
            self.unregister_workflow(plan.id)

        self._plans[plan.id] = plan
        if isinstance(plan.trigger, TimerTrigger):
            loop = asyncio.get_running_loop()
            self._timers[plan.id] = loop.create_task(
                self._run_timer(plan, plan.trigger), name=f"workflow-timer-{plan.id}"
            )
        logger.info(
            "Workflow registered",
            extra={"plan_id": plan.id, "trigger_type": plan.trigger.type},
        )

    def unregister_workflow(self, plan_id: str) -> None:
        removed = self._plans.pop(plan_id, None)
        timer = self._timers.pop(plan_id, None)
        if timer is not None:
            timer.cancel()
        if removed is not None:
            logger.info("Workflow unregistered", extra={"plan_id": plan_id})

    async def handle_incoming_email(self, email: EmailMessage) -> list[asyncio.Task[Execution]]:
        """Start one execution per matching plan and return without waiting for them."""

        matches = [
            plan for plan in self._plans.values() if trigger_matches_email(plan.trigger, email)
        ]
        if not matches:
            logger.debug("No workflow matched incoming email", extra={"email_id": email.id})
            return []

        trigger = TriggerData.from_email(email)
        logger.info(
            "Dispatching workflows for incoming email",
            extra={"email_id": email.id, "plan_ids": [plan.id for plan in matches]},
        )
        return [self._dispatch(plan, trigger) for plan in matches]

    async def drain(self) -> list[Execution]:
        """Wait for every in-flight execution, including ones started while waiting."""

        finished: list[Execution] = []
        while self._in_flight:
            finished.extend(await asyncio.gather(*list(self._in_flight)))
        return finished

    def shutdown(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._plans.clear()

    def _dispatch(self, plan: Plan, trigger: TriggerData) -> asyncio.Task[Execution]:
        task = asyncio.get_running_loop().create_task(
            self._engine.execute_workflow(plan, trigger),
            name=f"workflow-{plan.id}",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    def _now(self, timezone: str | None) -> datetime:
        now = self._clock()
        if timezone:
            try:
                return now.astimezone(ZoneInfo(timezone))
            except ZoneInfoNotFoundError:
                logger.warning("Unknown timezone; using local time", extra={"timezone": timezone})
        return now

    async def _run_timer(self, plan: Plan, trigger: TimerTrigger) -> None:
        if trigger.interval_minutes is not None:
            interval = trigger.interval_minutes * 60
            while True:
                await asyncio.sleep(interval)
                self._dispatch(plan, TriggerData(triggered_at=self._now(trigger.timezone)))

        at = trigger.specific_time or ""
        next_run = next_daily_occurrence(self._now(trigger.timezone), at)
        logger.info(
            "Daily workflow scheduled",
            extra={"plan_id": plan.id, "next_run": next_run.isoformat()},
        )
        while True:
            # Same-zone aware subtraction ignores offset changes; compare instants.
            delay = next_run.timestamp() - self._now(trigger.timezone).timestamp()
            await asyncio.sleep(max(0.0, delay))
            self._dispatch(plan, TriggerData(triggered_at=self._now(trigger.timezone)))
            next_run = next_daily_occurrence(max(self._now(trigger.timezone), next_run), at)
