"""Data models shared by the orchestrator, history buffer and script runners."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Literal

ConfirmationKind = Literal["execute", "success"]
PromptKind = Literal["execute", "success", "failure_reason"]
LogLevel = Literal["info", "status", "success", "warning"]


class AgentState(enum.Enum):
    """Exactly one of these holds for the orchestrator at any time."""

    IDLE = "idle"
    AWAITING_TASK = "awaiting_task"
    PLANNING = "planning"
    AWAITING_PLAN_CONFIRMATION = "awaiting_plan_confirmation"
    EXECUTING = "executing"
    AWAITING_SUCCESS_CONFIRMATION = "awaiting_success_confirmation"
    AWAITING_FAILURE_REASON = "awaiting_failure_reason"
    TERMINATED = "terminated"


@dataclass(frozen=True, slots=True)
class UserFeedback:
    """Free-text reason the user gave after a failed attempt."""

    text: str


@dataclass(frozen=True, slots=True)
class ModelAttempt:
    """A plan proposed by the planner, plus its log once it has run."""

    plan_code: str
    execution_log: str | None = None


HistoryEntry = UserFeedback | ModelAttempt


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of running one plan as a script."""

    success: bool
    exit_code: int
    stdout_log: str
    stderr_log: str
    combined_log: str
    cleanup_warning: str | None = None
