"""OS family detection and the script-running execution engine."""

from __future__ import annotations

import abc
import enum
import itertools
import locale
import logging
import os
import queue
import subprocess
import sys
import tempfile
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import IO

from shellplan.agent.models import ExecutionResult
from shellplan.errors import ExecutionSetupError, InitializationError

LOGGER = logging.getLogger(__name__)

OutputHandler = Callable[[str, bool], None]

SCRIPT_PREFIX = "shellplan_script_"
NO_DIAGNOSTIC_NOTE = "no diagnostic output"
_SCRIPT_COUNTER = itertools.count()


class OsFamily(enum.Enum):
    """The two supported host families."""

    POSIX = "posix"
    WINDOWS = "windows"

    @property
    def label(self) -> str:
        return "Windows" if self is OsFamily.WINDOWS else "Linux/macOS"

    @property
    def syntax(self) -> str:
        """Fence tag the planner is asked to use."""
        return "cmd" if self is OsFamily.WINDOWS else "bash"

    @property
    def dialect_aliases(self) -> frozenset[str]:
        if self is OsFamily.WINDOWS:
            return frozenset({"cmd", "bat", "batch", "shell"})
        return frozenset({"bash", "sh", "shell", "zsh"})


def detect_os_family(platform_name: str | None = None) -> OsFamily:
    """Map ``sys.platform`` onto a supported family or fail initialization."""
    name = sys.platform if platform_name is None else platform_name
    if name == "win32":
        return OsFamily.WINDOWS
    if name.startswith("linux") or name == "darwin":
        return OsFamily.POSIX
    msg = f"Unsupported operating system detected: {name}"
    raise InitializationError(msg)


class ScriptRunner(abc.ABC):
    """Runs a command sequence as a temporary script in a child process."""

    suffix: str = ""
    line_separator: str = os.linesep

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Friendly interpreter name."""

    @abc.abstractmethod
    def build_argv(self, script_path: Path) -> list[str]:
        """Argument vector that launches the interpreter on ``script_path``."""

    def prepare_script(self, script_path: Path) -> None:
        """Hook for making the written script runnable."""

    def run(
        self,
        commands: Sequence[str],
        working_directory: str | None = None,
        on_output: OutputHandler | None = None,
    ) -> ExecutionResult:
        """Execute ``commands`` and return the result.

        Raises ``ExecutionSetupError`` when the script cannot be written or the
        interpreter cannot be spawned. The temporary script is removed in every
        case.
        """
        script_path = self.script_path()
        self.log_request(commands, script_path=script_path, cwd=working_directory)
        started = self.monotonic_now()

        setup_error: OSError | None = None
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        combined_parts: list[str] = []
        exit_code = -1
        try:
            self._write_script(script_path, self.line_separator.join(commands))
            process = subprocess.Popen(  # noqa: S603
                self.build_argv(script_path),
                cwd=working_directory,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
            exit_code = self._stream(
                process,
                stdout_parts=stdout_parts,
                stderr_parts=stderr_parts,
                combined_parts=combined_parts,
                on_output=on_output,
            )
        except OSError as exc:
            setup_error = exc
        finally:
            cleanup_warning = self._remove_script(script_path)

        if setup_error is not None:
            message = str(setup_error)
            result = ExecutionResult(
                success=False,
                exit_code=ExecutionSetupError.exit_code,
                stdout_log="",
                stderr_log="",
                combined_log=f"[ERROR] Execution failed: {message}",
                cleanup_warning=cleanup_warning,
            )
            LOGGER.error(
                "script_setup_failed",
                extra={"shell": self.name, "script": str(script_path), "error": message},
            )
            raise ExecutionSetupError(message, result) from setup_error

        stderr_log = "".join(stderr_parts)
        combined_log = "".join(combined_parts).strip()
        if exit_code != 0 and not stderr_log.strip():
            note = f"[ERROR] Script exited with code {exit_code} and {NO_DIAGNOSTIC_NOTE}."
            combined_log = f"{combined_log}\n{note}" if combined_log else note

        result = ExecutionResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout_log="".join(stdout_parts),
            stderr_log=stderr_log,
            combined_log=combined_log,
            cleanup_warning=cleanup_warning,
        )
        self.log_result(result, duration=self.monotonic_now() - started)
        return result

    def script_path(self) -> Path:
        unique = f"{os.getpid()}_{time.time_ns()}_{next(_SCRIPT_COUNTER)}"
        return Path(tempfile.gettempdir()) / f"{SCRIPT_PREFIX}{unique}{self.suffix}"

    def _write_script(self, script_path: Path, content: str) -> None:
        with script_path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        self.prepare_script(script_path)
        LOGGER.debug("script_written", extra={"script": str(script_path)})

    @staticmethod
    def _stream(
        process: subprocess.Popen[bytes],
        *,
        stdout_parts: list[str],
        stderr_parts: list[str],
        combined_parts: list[str],
        on_output: OutputHandler | None,
    ) -> int:
        chunks: queue.Queue[tuple[bool, bytes | None]] = queue.Queue()
        readers = [
            threading.Thread(target=_pump, args=(process.stdout, False, chunks), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, True, chunks), daemon=True),
        ]
        for reader in readers:
            reader.start()

        open_streams = len(readers)
        while open_streams:
            is_error, raw = chunks.get()
            if raw is None:
                open_streams -= 1
                continue
            text = _normalize_output(raw)
            if is_error:
                stderr_parts.append(text)
                combined_parts.append(f"[STDERR] {text}")
            else:
                stdout_parts.append(text)
                combined_parts.append(f"[STDOUT] {text}")
            line = text.rstrip("\r\n")
            if on_output and line.strip():
                on_output(line, is_error)

        for reader in readers:
            reader.join()
        return process.wait()

    def _remove_script(self, script_path: Path) -> str | None:
        try:
            script_path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning(
                "script_cleanup_failed",
                extra={"script": str(script_path), "error": str(exc)},
            )
            return f"Warning: Failed to delete temp file {script_path}"
        LOGGER.debug("script_deleted", extra={"script": str(script_path)})
        return None

    def log_request(self, commands: Sequence[str], *, script_path: Path, cwd: str | None) -> None:
        LOGGER.info(
            "script_request",
            extra={
                "shell": self.name,
                "command_count": len(commands),
                "script": str(script_path),
                "cwd": cwd,
            },
        )

    def log_result(self, result: ExecutionResult, *, duration: float) -> None:
        LOGGER.info(
            "script_result",
            extra={
                "shell": self.name,
                "exit_code": result.exit_code,
                "success": result.success,
                "duration_seconds": round(duration, 4),
                "stdout_length": len(result.stdout_log),
                "stderr_length": len(result.stderr_log),
            },
        )

    @staticmethod
    def monotonic_now() -> float:
        return time.monotonic()


def _pump(
    pipe: IO[bytes] | None,
    is_error: bool,
    chunks: queue.Queue[tuple[bool, bytes | None]],
) -> None:
    if pipe is None:
        chunks.put((is_error, None))
        return
    try:
        for raw in iter(pipe.readline, b""):
            chunks.put((is_error, raw))
    finally:
        pipe.close()
        chunks.put((is_error, None))


def _normalize_output(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload

    for encoding in ("utf-8", "utf-8-sig", locale.getpreferredencoding(False), "cp1252"):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")
