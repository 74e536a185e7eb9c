from __future__ import annotations

from pathlib import Path

import pytest

from shellplan import cli
from shellplan.agent.events import (
    BotMessage,
    ChatReset,
    ConfirmationRequested,
    ExecutionFinished,
    ExecutionOutput,
    FailureReasonRequested,
    InputEnabled,
    LogMessage,
    PlanDisplayed,
    PromptDismissed,
)
from shellplan.agent.models import AgentState, ExecutionResult
from shellplan.agent.orchestrator import Orchestrator
from shellplan.config import AppConfig
from shellplan.errors import InitializationError
from shellplan.shell import OsFamily


def _fake_config() -> AppConfig:
    return AppConfig(
        api_key="key",
        model="gpt-4.1-mini",
        reasoning_effort=None,
        api_url="https://api.openai.com/v1/responses",
        request_timeout=60.0,
        max_retries=3,
        history_log_chars=500,
        log_dir=None,
        log_level="WARNING",
        working_directory=None,
    )


class FakePlanner:
    model = "fake-model"

    def __init__(self, responses: list[str], *, ready: bool = True) -> None:
        self.responses = responses
        self.ready = ready

    def ensure_ready(self) -> None:
        if not self.ready:
            raise InitializationError("Missing API key")

    def request_plan(self, _task: str, _history: str, _os_family: OsFamily) -> str:
        return self.responses.pop(0)


class FakeRunner:
    name = "fake"

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []

    def run(self, commands, working_directory=None, on_output=None) -> ExecutionResult:
        self.calls.append(tuple(commands))
        if on_output:
            on_output("a.txt", False)
        return ExecutionResult(
            success=True,
            exit_code=0,
            stdout_log="a.txt\n",
            stderr_log="",
            combined_log="[STDOUT] a.txt",
        )


def _session(
    responses: list[str], *, ready: bool = True
) -> tuple[Orchestrator, cli.ConsoleGateway, list[str], FakeRunner]:
    written: list[str] = []
    gateway = cli.ConsoleGateway(write=written.append)
    runner = FakeRunner()
    orchestrator = Orchestrator(
        planner=FakePlanner(responses, ready=ready),
        emit=gateway,
        runner=runner,
        os_family=OsFamily.POSIX,
    )
    return orchestrator, gateway, written, runner


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args([])
    assert args.task is None
    assert args.working_directory is None


def test_parser_accepts_cwd_override() -> None:
    args = cli.build_parser().parse_args(["--cwd", "./sandbox", "list files"])

    assert args.working_directory == "./sandbox"
    assert args.task == "list files"


def test_gateway_tracks_pending_prompt() -> None:
    gateway = cli.ConsoleGateway(write=lambda _text: None)
    assert gateway.prompt() == "Task: "

    gateway(InputEnabled('Enter task (or type "exit")'))
    assert gateway.prompt() == 'Enter task (or type "exit"): '

    gateway(ConfirmationRequested(kind="execute", prompt_text="Run?"))
    assert gateway.pending == "execute"
    assert gateway.prompt() == cli.PROMPT_LABELS["execute"]

    gateway(PromptDismissed(kind="execute"))
    assert gateway.pending is None

    gateway(FailureReasonRequested(prompt_text="Why?"))
    assert gateway.pending == "failure_reason"

    gateway(ChatReset())
    assert gateway.pending is None


def test_render_event_formats() -> None:
    plan = cli.render_event(
        PlanDisplayed(commands=("ls", "pwd"), code="ls\npwd", syntax="bash")
    )

    assert plan == "=== Proposed plan (bash) ===\n1. ls\n2. pwd"
    assert cli.render_event(BotMessage("hi")) == "agent: hi"
    assert cli.render_event(LogMessage("Thinking...", level="status")) == "[status] Thinking..."
    assert cli.render_event(ExecutionOutput(text="boom", is_error=True)) == "[stderr] boom"
    assert (
        cli.render_event(ExecutionFinished(success=False, exit_code=2, log=""))
        == "=== Execution finished (failed, exit code 2) ==="
    )
    assert cli.render_event(InputEnabled("Task")) is None


def test_run_session_drives_task_to_completion() -> None:
    orchestrator, gateway, written, runner = _session(["```bash\nls\n```"])
    answers = iter(["list files", "y", "yes", "exit"])
    prompts: list[str] = []

    def read(prompt: str) -> str:
        prompts.append(prompt)
        return next(answers)

    assert cli.run_session(orchestrator, gateway, read=read) == 0

    assert runner.calls == [("ls",)]
    assert orchestrator.state is AgentState.TERMINATED
    assert prompts[1] == cli.PROMPT_LABELS["execute"]
    assert prompts[2] == cli.PROMPT_LABELS["success"]
    assert "[stdout] a.txt" in written
    assert "[success] Task marked as successful by user!" in written
    assert "agent: Goodbye!" in written


def test_run_session_uses_initial_task_and_stops_on_eof() -> None:
    orchestrator, gateway, written, runner = _session(["```bash\nls\n```"])

    def read(_prompt: str) -> str:
        raise EOFError

    assert cli.run_session(orchestrator, gateway, initial_task="list files", read=read) == 0

    assert "task: list files" in written
    assert orchestrator.state is AgentState.AWAITING_PLAN_CONFIRMATION
    assert runner.calls == []


def test_run_session_returns_error_when_start_fails() -> None:
    orchestrator, gateway, written, _runner = _session([], ready=False)

    assert cli.run_session(orchestrator, gateway, read=lambda _p: "unused") == 1
    assert written == ["error: Missing API key"]


def test_dispatch_treats_anything_but_yes_as_decline() -> None:
    orchestrator, gateway, written, runner = _session(["```bash\nls\n```"])
    orchestrator.start()
    cli.dispatch(orchestrator, gateway, "list files")

    cli.dispatch(orchestrator, gateway, "maybe")

    assert runner.calls == []
    assert "[info] Execution cancelled by user." in written
    assert orchestrator.state is AgentState.AWAITING_TASK


def test_dispatch_routes_failure_reason_and_restart() -> None:
    orchestrator, gateway, written, _runner = _session(["```bash\nls\n```"])
    orchestrator.start()
    cli.dispatch(orchestrator, gateway, "list files")
    cli.dispatch(orchestrator, gateway, "y")
    cli.dispatch(orchestrator, gateway, "n")
    assert gateway.pending == "failure_reason"

    cli.dispatch(orchestrator, gateway, "/restart")

    assert "=== Chat reset ===" in written
    assert gateway.pending is None
    assert orchestrator.state is AgentState.AWAITING_TASK


def test_main_rejects_invalid_cwd_from_config(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr("sys.argv", ["shellplan"])

    def fake_config_with_missing_cwd() -> AppConfig:
        config = _fake_config()
        config.working_directory = "./definitely-missing-dir"
        return config

    monkeypatch.setattr(
        cli,
        "AppConfig",
        type("FakeConfig", (), {"from_env": staticmethod(fake_config_with_missing_cwd)}),
    )

    assert cli.main() == 1
    out = capsys.readouterr().out
    assert "Invalid configured cwd directory" in out


def test_main_cwd_cli_override_takes_precedence(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    override_dir = tmp_path / "override"
    override_dir.mkdir()
    monkeypatch.setattr("sys.argv", ["shellplan", "--cwd", str(override_dir), "list files"])

    captured: dict[str, object] = {}

    def fake_run_session(orchestrator: Orchestrator, _gateway, *, initial_task=None) -> int:
        captured["working_directory"] = orchestrator.working_directory
        captured["initial_task"] = initial_task
        return 0

    def fake_config_with_cwd() -> AppConfig:
        config = _fake_config()
        config.working_directory = "./ignored-from-config"
        return config

    monkeypatch.setattr(cli, "run_session", fake_run_session)
    monkeypatch.setattr(
        cli,
        "AppConfig",
        type("FakeConfig", (), {"from_env": staticmethod(fake_config_with_cwd)}),
    )

    assert cli.main() == 0
    assert captured["working_directory"] == str(override_dir.resolve())
    assert captured["initial_task"] == "list files"
