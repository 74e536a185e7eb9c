"""Command-line interface for shellplan."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from pathlib import Path
from typing import cast

from .agent.events import (
    AgentEvent,
    BotMessage,
    ChatReset,
    ConfirmationRequested,
    ErrorMessage,
    ExecutionFinished,
    ExecutionOutput,
    ExecutionStarted,
    FailureReasonRequested,
    InputEnabled,
    LogMessage,
    PlanDisplayed,
    PromptDismissed,
    TaskMessage,
)
from .agent.models import AgentState, PromptKind
from .agent.orchestrator import Orchestrator
from .config import AppConfig
from .llm.client import PlannerClient

LOGGER = logging.getLogger(__name__)

RESTART_COMMAND = "/restart"
YES_ANSWERS = {"y", "yes"}

PROMPT_LABELS: dict[str, str] = {
    "execute": "Execute these commands? [y/N]: ",
    "success": "Did this achieve your goal? [y/N]: ",
    "failure_reason": "Reason (blank to stop retrying): ",
}


class CLIArgs(argparse.Namespace):
    task: str | None
    working_directory: str | None


class ConsoleGateway:
    """Renders orchestrator events as plain text and remembers the open prompt."""

    def __init__(self, write: Callable[[str], None] = print) -> None:
        self.write = write
        self.pending: PromptKind | None = None
        self.placeholder = "Task"

    def __call__(self, event: AgentEvent) -> None:
        if isinstance(event, ConfirmationRequested):
            self.pending = event.kind
        elif isinstance(event, FailureReasonRequested):
            self.pending = "failure_reason"
        elif isinstance(event, (PromptDismissed, ChatReset)):
            self.pending = None
        elif isinstance(event, InputEnabled):
            self.pending = None
            self.placeholder = event.placeholder

        rendered = render_event(event)
        if rendered is not None:
            self.write(rendered)

    def prompt(self) -> str:
        if self.pending is not None:
            return PROMPT_LABELS[self.pending]
        return f"{self.placeholder}: "


def render_event(event: AgentEvent) -> str | None:
    if isinstance(event, TaskMessage):
        return f"task: {event.text}"
    if isinstance(event, BotMessage):
        return f"agent: {event.text}"
    if isinstance(event, ErrorMessage):
        return f"error: {event.text}"
    if isinstance(event, LogMessage):
        return f"[{event.level}] {event.message}"
    if isinstance(event, PlanDisplayed):
        lines = [f"=== Proposed plan ({event.syntax}) ==="]
        lines.extend(f"{idx}. {command}" for idx, command in enumerate(event.commands, start=1))
        return "\n".join(lines)
    if isinstance(event, (ConfirmationRequested, FailureReasonRequested)):
        return event.prompt_text
    if isinstance(event, ExecutionStarted):
        return f"=== Executing {event.command_count} command(s) ==="
    if isinstance(event, ExecutionOutput):
        return f"[{'stderr' if event.is_error else 'stdout'}] {event.text}"
    if isinstance(event, ExecutionFinished):
        status = "success" if event.success else "failed"
        return f"=== Execution finished ({status}, exit code {event.exit_code}) ==="
    if isinstance(event, ChatReset):
        return "=== Chat reset ==="
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellplan",
        description="Plan, confirm and run shell commands for a task",
    )
    parser.add_argument(
        "--cwd",
        dest="working_directory",
        help=(
            "Directory the generated scripts run in. "
            "Takes precedence over config/env cwd values."
        ),
    )
    parser.add_argument("task", nargs="?", help="First task to plan")
    return parser


def dispatch(orchestrator: Orchestrator, gateway: ConsoleGateway, line: str) -> None:
    """Route one line of user input to whatever the orchestrator is waiting for."""
    if line.strip().lower() == RESTART_COMMAND:
        orchestrator.restart()
        return

    pending = gateway.pending
    if pending == "execute" or pending == "success":
        orchestrator.confirm(line.strip().lower() in YES_ANSWERS, pending)
    elif pending == "failure_reason":
        orchestrator.submit_failure_reason(line)
    else:
        orchestrator.submit_task(line)


def run_session(
    orchestrator: Orchestrator,
    gateway: ConsoleGateway,
    *,
    initial_task: str | None = None,
    read: Callable[[str], str] = input,
) -> int:
    if not orchestrator.start():
        return 1
    if initial_task:
        orchestrator.submit_task(initial_task)

    while orchestrator.state is not AgentState.TERMINATED:
        try:
            line = read(gateway.prompt())
        except EOFError:
            LOGGER.debug("stdin_closed")
            break
        dispatch(orchestrator, gateway, line)
    return 0


def main() -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args())
    config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    configured_working_directory = (
        args.working_directory if args.working_directory is not None else config.working_directory
    )
    working_directory = str(Path.cwd())
    if configured_working_directory is not None:
        resolved_working_directory = Path(configured_working_directory).expanduser().resolve()
        if not resolved_working_directory.exists() or not resolved_working_directory.is_dir():
            print(f"Invalid configured cwd directory: {configured_working_directory}")
            return 1
        working_directory = str(resolved_working_directory)

    planner = PlannerClient(
        api_key=config.api_key,
        model=config.model,
        reasoning_effort=config.reasoning_effort,
        api_url=config.api_url,
        timeout=config.request_timeout,
    )
    gateway = ConsoleGateway()
    orchestrator = Orchestrator(
        planner=planner,
        emit=gateway,
        working_directory=working_directory,
        max_retries=config.max_retries,
        history_log_chars=config.history_log_chars,
        log_dir=config.log_dir,
    )
    return run_session(orchestrator, gateway, initial_task=args.task)


if __name__ == "__main__":
    raise SystemExit(main())
