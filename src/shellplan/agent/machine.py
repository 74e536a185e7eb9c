"""Pure state transitions for the plan/confirm/execute/retry cycle.

Every function takes the current ``AgentSnapshot`` and returns a
``Transition``: the replacement snapshot, the events to show the user, and
at most one follow-up action (ask the planner, or run the plan). Nothing in
this module performs I/O.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from shellplan.agent.events import (
    AgentEvent,
    BotMessage,
    ConfirmationRequested,
    ErrorMessage,
    ExecutionFinished,
    FailureReasonRequested,
    InputDisabled,
    InputEnabled,
    LogMessage,
    PlanDisplayed,
    PromptDismissed,
    TaskMessage,
)
from shellplan.agent.history import HistoryBuffer
from shellplan.agent.models import (
    AgentState,
    ConfirmationKind,
    ExecutionResult,
    ModelAttempt,
    UserFeedback,
)
from shellplan.errors import ExecutionFailure

DEFAULT_MAX_RETRIES = 3
EXIT_TOKENS = frozenset({"exit", "quit"})
TASK_PLACEHOLDER = 'Enter task (or type "exit")'
GOAL_NOT_MET_REASON = "goal not met"
EMPTY_PLAN_REASON = "The planner response contained no runnable commands."

BUSY_NOTICE = "Agent is busy processing a previous request. Please wait."
NOT_READY_NOTICE = "Agent is not ready. Please wait or restart."
SESSION_ENDED_NOTICE = "Session has ended. Restart the agent to submit new tasks."
NO_PROMPT_NOTICE = "There is no pending {kind} prompt to answer."

EXECUTE_PROMPT = "Review the plan above. Do you want to execute these commands?"
SUCCESS_PROMPT = (
    "Commands executed successfully (exit code 0). Did this achieve your overall goal?"
)

_CONFIRMATION_STATES: dict[str, AgentState] = {
    "execute": AgentState.AWAITING_PLAN_CONFIRMATION,
    "success": AgentState.AWAITING_SUCCESS_CONFIRMATION,
}


class Action(enum.Enum):
    REQUEST_PLAN = "request_plan"
    EXECUTE_PLAN = "execute_plan"


@dataclass(frozen=True, slots=True)
class AgentSnapshot:
    """Complete orchestrator state; replaced, never mutated."""

    state: AgentState = AgentState.IDLE
    busy: bool = False
    task: str | None = None
    plan: tuple[str, ...] | None = None
    retries: int = 0
    history: HistoryBuffer = field(default_factory=HistoryBuffer)
    max_retries: int = DEFAULT_MAX_RETRIES


@dataclass(frozen=True, slots=True)
class Transition:
    snapshot: AgentSnapshot
    events: tuple[AgentEvent, ...] = ()
    action: Action | None = None


def start(snapshot: AgentSnapshot, os_label: str) -> Transition:
    if snapshot.state is not AgentState.IDLE:
        return Transition(snapshot)
    greeting = BotMessage(f"AI agent ready. Detected OS: {os_label}. Waiting for task...")
    return request_task_input(snapshot, greeting)


def request_task_input(snapshot: AgentSnapshot, *events: AgentEvent) -> Transition:
    """Forget the current task and ask for a new one."""
    reset = replace(
        snapshot,
        state=AgentState.AWAITING_TASK,
        busy=False,
        task=None,
        plan=None,
        retries=0,
        history=HistoryBuffer(),
    )
    return Transition(reset, (*events, InputEnabled(TASK_PLACEHOLDER)))


def submit_task(snapshot: AgentSnapshot, text: str) -> Transition:
    if snapshot.state is AgentState.TERMINATED:
        return Transition(snapshot, (ErrorMessage(SESSION_ENDED_NOTICE),))
    if snapshot.busy:
        return Transition(snapshot, (ErrorMessage(BUSY_NOTICE),))
    if snapshot.state is not AgentState.AWAITING_TASK:
        return Transition(snapshot, (ErrorMessage(NOT_READY_NOTICE),))

    task = text.strip()
    if not task:
        return Transition(snapshot)

    if task.lower() in EXIT_TOKENS:
        terminated = replace(
            snapshot, state=AgentState.TERMINATED, busy=True, task=None, plan=None
        )
        return Transition(terminated, (BotMessage("Goodbye!"), InputDisabled()))

    planning = replace(
        snapshot,
        state=AgentState.PLANNING,
        busy=True,
        task=task,
        plan=None,
        retries=0,
        history=HistoryBuffer(),
    )
    return Transition(planning, (TaskMessage(task), InputDisabled()), Action.REQUEST_PLAN)


def plan_generated(snapshot: AgentSnapshot, commands: Sequence[str], syntax: str) -> Transition:
    if snapshot.state is not AgentState.PLANNING:
        return Transition(snapshot)
    if not commands:
        return handle_failure(snapshot, EMPTY_PLAN_REASON)

    plan = tuple(commands)
    code = "\n".join(plan)
    awaiting = replace(
        snapshot,
        state=AgentState.AWAITING_PLAN_CONFIRMATION,
        plan=plan,
        history=snapshot.history.append(ModelAttempt(plan_code=code)),
    )
    return Transition(
        awaiting,
        (
            PlanDisplayed(commands=plan, code=code, syntax=syntax),
            ConfirmationRequested(kind="execute", prompt_text=EXECUTE_PROMPT),
        ),
    )


def planning_failed(snapshot: AgentSnapshot, reason: str) -> Transition:
    if snapshot.state is not AgentState.PLANNING:
        return Transition(snapshot)
    return handle_failure(snapshot, reason)


def confirm(snapshot: AgentSnapshot, confirmed: bool, kind: ConfirmationKind) -> Transition:
    expected = _CONFIRMATION_STATES.get(kind)
    if expected is None or snapshot.state is not expected:
        return Transition(snapshot, (ErrorMessage(NO_PROMPT_NOTICE.format(kind=kind)),))

    dismissed = PromptDismissed(kind=kind)
    if kind == "execute":
        if confirmed:
            executing = replace(snapshot, state=AgentState.EXECUTING)
            return Transition(
                executing,
                (dismissed, LogMessage("Plan approved. Executing commands...")),
                Action.EXECUTE_PLAN,
            )
        return request_task_input(snapshot, dismissed, LogMessage("Execution cancelled by user."))

    if confirmed:
        return request_task_input(
            snapshot,
            dismissed,
            LogMessage("Task marked as successful by user!", level="success"),
        )
    return _prepend(dismissed, handle_failure(snapshot, GOAL_NOT_MET_REASON))


def execution_completed(
    snapshot: AgentSnapshot,
    result: ExecutionResult,
    *,
    failure_reason: str | None = None,
) -> Transition:
    if snapshot.state is not AgentState.EXECUTING:
        return Transition(snapshot)

    finished = ExecutionFinished(
        success=result.success, exit_code=result.exit_code, log=result.combined_log
    )
    logged = replace(
        snapshot,
        plan=None,
        history=snapshot.history.with_execution_log(result.combined_log),
    )
    if result.success:
        awaiting = replace(logged, state=AgentState.AWAITING_SUCCESS_CONFIRMATION)
        return Transition(
            awaiting,
            (finished, ConfirmationRequested(kind="success", prompt_text=SUCCESS_PROMPT)),
        )

    reason = failure_reason or str(ExecutionFailure.from_result(result))
    return _prepend(finished, handle_failure(logged, reason))


def handle_failure(snapshot: AgentSnapshot, reason: str) -> Transition:
    """Count a failed attempt, then ask for feedback or abandon the task."""
    retries = snapshot.retries + 1
    ceiling = snapshot.max_retries
    failed = replace(snapshot, retries=retries, plan=None)
    report = ErrorMessage(f"Task failed (Attempt {retries}/{ceiling}). Failure details: {reason}")

    if retries >= ceiling:
        return request_task_input(
            failed,
            report,
            ErrorMessage(f"Maximum retries ({ceiling}) reached. Task abandoned."),
        )

    awaiting = replace(failed, state=AgentState.AWAITING_FAILURE_REASON)
    prompt = FailureReasonRequested(
        prompt_text=(
            f"Attempt {retries} failed. Please describe why or what needs to change"
            " (leave blank to stop retrying):"
        )
    )
    return Transition(awaiting, (report, prompt))


def failure_reason_provided(snapshot: AgentSnapshot, text: str) -> Transition:
    if snapshot.state is not AgentState.AWAITING_FAILURE_REASON:
        return Transition(
            snapshot, (ErrorMessage(NO_PROMPT_NOTICE.format(kind="failure reason")),)
        )

    dismissed = PromptDismissed(kind="failure_reason")
    reason = text.strip()
    if not reason:
        return request_task_input(
            snapshot,
            dismissed,
            LogMessage("Retry cancelled by user (no feedback provided)."),
        )

    planning = replace(
        snapshot,
        state=AgentState.PLANNING,
        history=snapshot.history.append(UserFeedback(text=reason)),
    )
    attempt = snapshot.retries + 1
    return Transition(
        planning,
        (
            dismissed,
            LogMessage(
                f"Retrying based on feedback (Attempt {attempt}/{snapshot.max_retries})..."
            ),
        ),
        Action.REQUEST_PLAN,
    )


def _prepend(event: AgentEvent, transition: Transition) -> Transition:
    return Transition(transition.snapshot, (event, *transition.events), transition.action)
