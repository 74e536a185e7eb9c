"""Exception hierarchy shared by the planner, parser, runner and orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shellplan.agent.models import ExecutionResult


class ShellPlanError(Exception):
    """Base class for all shellplan failures."""


class InitializationError(ShellPlanError):
    """Missing credential or unsupported OS; fatal for the whole session."""


class PlannerUnavailable(ShellPlanError):
    """The planning service errored or returned no text."""


class ParseEmpty(ShellPlanError):
    """The planner response contained no runnable commands."""


class ExecutionSetupError(ShellPlanError):
    """The script could not be written, made executable, or spawned."""

    exit_code = -1

    def __init__(self, message: str, result: ExecutionResult) -> None:
        super().__init__(message)
        self.result = result


class ExecutionFailure(ShellPlanError):
    """The script ran but exited with a nonzero code."""

    def __init__(self, exit_code: int, stderr: str) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or f"Script failed with exit code {exit_code}."
        super().__init__(detail)

    @classmethod
    def from_result(cls, result: ExecutionResult) -> ExecutionFailure:
        return cls(result.exit_code, result.stderr_log)
