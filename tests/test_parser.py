from __future__ import annotations

import pytest

from shellplan.agent.parser import find_fenced_block, parse_plan
from shellplan.shell import OsFamily

POSIX = OsFamily.POSIX.dialect_aliases
WINDOWS = OsFamily.WINDOWS.dialect_aliases


def test_parse_plan_reads_single_tagged_block() -> None:
    response = "Here you go:\n```bash\nls -la\n# list everything\n\npwd\n```\nDone."

    parsed = parse_plan(response, POSIX)

    assert parsed.commands == ("ls -la", "pwd")
    assert parsed.used_fallback is False


@pytest.mark.parametrize(
    "line",
    ["1. echo hi", "- echo hi", "* echo hi", "12.   echo hi", "  -\techo hi  "],
)
def test_parse_plan_strips_list_markers(line: str) -> None:
    parsed = parse_plan(f"```\n{line}\n```", POSIX)

    assert parsed.commands == ("echo hi",)


def test_parse_plan_keeps_inner_spacing_of_commands() -> None:
    parsed = parse_plan("```sh\n  - printf '%s   %s' a b  \n```", POSIX)

    assert parsed.commands == ("printf '%s   %s' a b",)


def test_parse_plan_drops_comment_lines() -> None:
    parsed = parse_plan("```bash\n#!/bin/bash\n// note\necho one\n   # indented\n```", POSIX)

    assert parsed.commands == ("echo one",)


def test_parse_plan_uses_only_first_matching_block() -> None:
    response = "```bash\necho first\n```\nand\n```bash\necho second\n```"

    parsed = parse_plan(response, POSIX)

    assert parsed.commands == ("echo first",)


def test_parse_plan_matches_dialect_tag_case_insensitively() -> None:
    parsed = parse_plan("```CMD\ndir /b\n```", WINDOWS)

    assert parsed.commands == ("dir /b",)
    assert parsed.used_fallback is False


def test_parse_plan_skips_blocks_for_other_languages() -> None:
    response = "```python\nprint('x')\n```\n```bash\necho real\n```"

    parsed = parse_plan(response, POSIX)

    assert parsed.commands == ("echo real",)


def test_parse_plan_falls_back_to_whole_text_without_fence() -> None:
    parsed = parse_plan("1. mkdir build\n2. cd build\n", POSIX)

    assert parsed.commands == ("mkdir build", "cd build")
    assert parsed.used_fallback is True


def test_parse_plan_fallback_drops_stray_fence_lines() -> None:
    parsed = parse_plan("Here you go:\n```bash\nmkdir build\ncd build", POSIX)

    assert parsed.commands == ("Here you go:", "mkdir build", "cd build")
    assert parsed.used_fallback is True


def test_parse_plan_returns_empty_plan_without_raising() -> None:
    assert parse_plan("", POSIX).commands == ()
    assert parse_plan("```bash\n# nothing to do\n```", POSIX).commands == ()


def test_find_fenced_block_handles_single_line_block() -> None:
    assert find_fenced_block("run ```ls -la``` now", {"bash"}) == "ls -la"


def test_find_fenced_block_ignores_unterminated_fence() -> None:
    assert find_fenced_block("```bash\nls", {"bash"}) is None
