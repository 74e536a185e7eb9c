"""Drives the task state machine and performs its planner and script I/O."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from shellplan.agent import machine
from shellplan.agent.events import (
    BotMessage,
    ChatReset,
    ErrorMessage,
    EventSink,
    ExecutionOutput,
    ExecutionStarted,
    InputDisabled,
    LogMessage,
)
from shellplan.agent.history import DEFAULT_LOG_PREVIEW_CHARS
from shellplan.agent.machine import Action, AgentSnapshot, Transition
from shellplan.agent.models import AgentState, ConfirmationKind, ExecutionResult
from shellplan.agent.parser import parse_plan
from shellplan.errors import (
    ExecutionFailure,
    ExecutionSetupError,
    InitializationError,
    ParseEmpty,
    PlannerUnavailable,
)
from shellplan.shell import OsFamily, OutputHandler, create_script_runner, detect_os_family

LOGGER = logging.getLogger(__name__)

FALLBACK_WARNING = (
    "Warning: Parsed commands directly from response text (no code block found)."
    " Review plan carefully."
)


class Planner(Protocol):
    model: str

    def ensure_ready(self) -> None: ...

    def request_plan(self, task: str, history_context: str, os_family: OsFamily) -> str: ...


class Runner(Protocol):
    @property
    def name(self) -> str: ...

    def run(
        self,
        commands: Sequence[str],
        working_directory: str | None = None,
        on_output: OutputHandler | None = None,
    ) -> ExecutionResult: ...


class Orchestrator:
    """Owns one task at a time from submission to completion or abandonment."""

    def __init__(
        self,
        *,
        planner: Planner,
        emit: EventSink,
        working_directory: str | None = None,
        runner: Runner | None = None,
        os_family: OsFamily | None = None,
        max_retries: int = machine.DEFAULT_MAX_RETRIES,
        history_log_chars: int = DEFAULT_LOG_PREVIEW_CHARS,
        log_dir: str | Path | None = None,
    ) -> None:
        self.planner = planner
        self.emit = emit
        self.working_directory = working_directory
        self.runner = runner
        self.os_family = os_family
        self.max_retries = max_retries
        self.history_log_chars = history_log_chars
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.initialized = False
        self._snapshot = AgentSnapshot(max_retries=max_retries)

    @property
    def snapshot(self) -> AgentSnapshot:
        return self._snapshot

    @property
    def state(self) -> AgentState:
        return self._snapshot.state

    def start(self) -> bool:
        """Validate the environment and open the task prompt.

        Returns false when initialization fails; the error is reported once
        and the orchestrator stays idle.
        """
        try:
            self.planner.ensure_ready()
            os_family = self.os_family or detect_os_family()
            runner = self.runner or create_script_runner(os_family)
        except InitializationError as exc:
            LOGGER.error("orchestrator_init_failed", extra={"error": str(exc)})
            self.initialized = False
            self.emit(ErrorMessage(str(exc)))
            return False

        self.os_family = os_family
        self.runner = runner
        self.initialized = True
        LOGGER.info(
            "orchestrator_started",
            extra={"os_family": os_family.value, "working_directory": self.working_directory},
        )
        self._apply(machine.start(self._snapshot, os_family.label))
        return True

    def restart(self) -> bool:
        LOGGER.info("orchestrator_restart_requested")
        self.emit(ChatReset())
        self.emit(BotMessage("Restarting agent..."))
        self._snapshot = AgentSnapshot(max_retries=self.max_retries)
        return self.start()

    def submit_task(self, text: str) -> None:
        if self._reject_when_not_ready():
            return
        self._apply(machine.submit_task(self._snapshot, text))

    def confirm(self, confirmed: bool, kind: ConfirmationKind) -> None:
        if self._reject_when_not_ready():
            return
        self._apply(machine.confirm(self._snapshot, confirmed, kind))

    def submit_failure_reason(self, text: str) -> None:
        if self._reject_when_not_ready():
            return
        self._apply(machine.failure_reason_provided(self._snapshot, text))

    def _reject_when_not_ready(self) -> bool:
        if self.initialized:
            return False
        self.emit(ErrorMessage(machine.NOT_READY_NOTICE))
        return True

    def _apply(self, transition: Transition) -> None:
        previous = self._snapshot.state
        self._snapshot = transition.snapshot
        if previous is not self._snapshot.state:
            LOGGER.debug(
                "state_transition",
                extra={"from": previous.value, "to": self._snapshot.state.value},
            )
        for event in transition.events:
            self.emit(event)

        if transition.action is Action.REQUEST_PLAN:
            self._request_plan()
        elif transition.action is Action.EXECUTE_PLAN:
            self._execute_plan()

    def _request_plan(self) -> None:
        snapshot = self._snapshot
        os_family = self._require_os_family()
        task = snapshot.task or ""
        self.emit(LogMessage("Thinking...", level="status"))
        try:
            raw = self.planner.request_plan(
                task,
                snapshot.history.render(max_log_chars=self.history_log_chars),
                os_family,
            )
            parsed = parse_plan(raw, os_family.dialect_aliases)
            if not parsed.commands:
                raise ParseEmpty(
                    "Failed to parse a valid command plan from the planner response."
                )
        except (PlannerUnavailable, ParseEmpty) as exc:
            LOGGER.warning(
                "plan_generation_failed",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            self.emit(ErrorMessage(f"Failed to get or parse plan from the planner: {exc}"))
            self._apply(machine.planning_failed(self._snapshot, str(exc)))
            return

        if parsed.used_fallback:
            self.emit(LogMessage(FALLBACK_WARNING, level="warning"))
        self._apply(machine.plan_generated(self._snapshot, parsed.commands, os_family.syntax))

    def _execute_plan(self) -> None:
        snapshot = self._snapshot
        commands = snapshot.plan or ()
        runner = self._require_runner()
        self.emit(InputDisabled())
        self.emit(ExecutionStarted(command_count=len(commands)))

        failure_reason: str | None = None
        try:
            result = runner.run(commands, self.working_directory, self._emit_output)
        except ExecutionSetupError as exc:
            self.emit(ErrorMessage(f"Execution setup failed: {exc}"))
            result = exc.result
            failure_reason = f"Execution setup failed: {exc}"
        else:
            if not result.success:
                failure_reason = str(ExecutionFailure.from_result(result))

        if result.cleanup_warning:
            self.emit(LogMessage(result.cleanup_warning, level="warning"))
        self._append_log(snapshot, result)
        self._apply(
            machine.execution_completed(self._snapshot, result, failure_reason=failure_reason)
        )

    def _emit_output(self, text: str, is_error: bool) -> None:
        self.emit(ExecutionOutput(text=text, is_error=is_error))

    def _require_os_family(self) -> OsFamily:
        if self.os_family is None:
            msg = "Orchestrator used before start()"
            raise RuntimeError(msg)
        return self.os_family

    def _require_runner(self) -> Runner:
        if self.runner is None:
            msg = "Orchestrator used before start()"
            raise RuntimeError(msg)
        return self.runner

    def _append_log(self, snapshot: AgentSnapshot, result: ExecutionResult) -> None:
        """Append one JSON line per executed attempt; never read back."""
        if self.log_dir is None:
            return
        day_file = self.log_dir / f"session-{datetime.now(timezone.utc).date().isoformat()}.log"
        entry = {
            "log_version": 1,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "task": snapshot.task,
            "model": getattr(self.planner, "model", None),
            "shell": getattr(self.runner, "name", self.runner.__class__.__name__),
            "working_directory": self.working_directory,
            "attempt": snapshot.retries + 1,
            "plan": list(snapshot.plan or ()),
            "exit_code": result.exit_code,
            "success": result.success,
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with day_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError as exc:
            LOGGER.warning(
                "session_log_write_failed",
                extra={"log_file": str(day_file), "error": str(exc)},
            )
            self.emit(
                LogMessage(f"Warning: Failed to write session log {day_file}", level="warning")
            )
