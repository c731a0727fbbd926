"""Trigger-driven mail workflow automation.

This package provides first-class types for:
- Plans (a trigger plus an ordered list of steps)
- Trigger payloads and normalized email messages
- The capability port through which steps act on a mailbox
- The engine, the trigger manager, the plan store and the plan validator

Control flow is deterministic: steps run strictly in order, and every transition is
written to the execution log.
"""

from mailflow.automation.workflow.actions import ActionResult, MailActions
from mailflow.automation.workflow.engine import WorkflowEngine
from mailflow.automation.workflow.events import EmailAddress, EmailMessage, TriggerData
from mailflow.automation.workflow.execution import (
    Execution,
    ExecutionStatus,
    StepResult,
    StepStatus,
)
from mailflow.automation.workflow.execution_log import ExecutionLog, LogEntry
from mailflow.automation.workflow.models import Plan, PlanDraft
from mailflow.automation.workflow.service import (
    InvalidPlanError,
    WorkflowNotFoundError,
    WorkflowService,
)
from mailflow.automation.workflow.store import PlanStore
from mailflow.automation.workflow.triggers import TriggerManager
from mailflow.automation.workflow.validator import ValidationResult, validate_plan

__all__ = [
    "ActionResult",
    "EmailAddress",
    "EmailMessage",
    "Execution",
    "ExecutionLog",
    "ExecutionStatus",
    "InvalidPlanError",
    "LogEntry",
    "MailActions",
    "Plan",
    "PlanDraft",
    "PlanStore",
    "StepResult",
    "StepStatus",
    "TriggerData",
    "TriggerManager",
    "ValidationResult",
    "WorkflowEngine",
    "WorkflowNotFoundError",
    "WorkflowService",
    "validate_plan",
]
