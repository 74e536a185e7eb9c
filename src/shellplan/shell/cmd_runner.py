"""Windows script runner using ``cmd.exe``."""

from __future__ import annotations

from pathlib import Path

from .base import ScriptRunner


class CmdScriptRunner(ScriptRunner):
    """Runs plans as ``.bat`` scripts through ``cmd.exe``."""

    suffix = ".bat"
    line_separator = "\r\n"

    def __init__(self, executable: str = "cmd.exe") -> None:
        self.executable = executable

    @property
    def name(self) -> str:
        return "cmd"

    def build_argv(self, script_path: Path) -> list[str]:
        return [self.executable, "/d", "/c", str(script_path)]
