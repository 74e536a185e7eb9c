"""Outbound events the orchestrator sends to a UI gateway."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from shellplan.agent.models import ConfirmationKind, LogLevel, PromptKind


@dataclass(frozen=True, slots=True)
class TaskMessage:
    """Echo of the task the user submitted."""

    text: str


@dataclass(frozen=True, slots=True)
class BotMessage:
    text: str


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    text: str


@dataclass(frozen=True, slots=True)
class LogMessage:
    """Status line; ``level`` drives styling only."""

    message: str
    level: LogLevel = "info"


@dataclass(frozen=True, slots=True)
class InputEnabled:
    placeholder: str


@dataclass(frozen=True, slots=True)
class InputDisabled:
    pass


@dataclass(frozen=True, slots=True)
class PlanDisplayed:
    commands: tuple[str, ...]
    code: str
    syntax: str


@dataclass(frozen=True, slots=True)
class ConfirmationRequested:
    kind: ConfirmationKind
    prompt_text: str


@dataclass(frozen=True, slots=True)
class FailureReasonRequested:
    prompt_text: str


@dataclass(frozen=True, slots=True)
class PromptDismissed:
    kind: PromptKind


@dataclass(frozen=True, slots=True)
class ExecutionStarted:
    command_count: int


@dataclass(frozen=True, slots=True)
class ExecutionOutput:
    text: str
    is_error: bool


@dataclass(frozen=True, slots=True)
class ExecutionFinished:
    success: bool
    exit_code: int
    log: str


@dataclass(frozen=True, slots=True)
class ChatReset:
    pass


AgentEvent = (
    TaskMessage
    | BotMessage
    | ErrorMessage
    | LogMessage
    | InputEnabled
    | InputDisabled
    | PlanDisplayed
    | ConfirmationRequested
    | FailureReasonRequested
    | PromptDismissed
    | ExecutionStarted
    | ExecutionOutput
    | ExecutionFinished
    | ChatReset
)
EventSink = Callable[[AgentEvent], None]
