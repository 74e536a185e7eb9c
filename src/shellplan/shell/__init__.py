"""Script runner implementations."""

from .base import OsFamily, OutputHandler, ScriptRunner, detect_os_family
from .bash_runner import BashScriptRunner
from .cmd_runner import CmdScriptRunner


def create_script_runner(os_family: OsFamily) -> ScriptRunner:
    if os_family is OsFamily.WINDOWS:
        return CmdScriptRunner()
    if os_family is OsFamily.POSIX:
        return BashScriptRunner()
    msg = f"Unsupported OS family: {os_family}"
    raise ValueError(msg)


__all__ = [
    "BashScriptRunner",
    "CmdScriptRunner",
    "OsFamily",
    "OutputHandler",
    "ScriptRunner",
    "create_script_runner",
    "detect_os_family",
]
