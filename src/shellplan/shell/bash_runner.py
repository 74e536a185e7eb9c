"""POSIX script runner using ``bash`` (or ``sh``)."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from .base import ScriptRunner

EXECUTABLE_MODE = 0o755


class BashScriptRunner(ScriptRunner):
    """Runs plans as ``.sh`` scripts through ``bash``/``sh``."""

    suffix = ".sh"
    line_separator = "\n"

    def __init__(self, executable: str | None = None, *, fallback_to_sh: bool = True) -> None:
        self.executable = executable or _default_executable(fallback_to_sh=fallback_to_sh)

    @property
    def name(self) -> str:
        return "bash"

    def build_argv(self, script_path: Path) -> list[str]:
        return [self.executable, str(script_path)]

    def prepare_script(self, script_path: Path) -> None:
        os.chmod(script_path, EXECUTABLE_MODE)


def _default_executable(*, fallback_to_sh: bool) -> str:
    if shutil.which("bash"):
        return "bash"
    if fallback_to_sh and shutil.which("sh"):
        return "sh"
    return "/bin/bash"
