"""Extract an ordered command list from free-form planner output."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

FENCE = "```"
_LIST_MARKER = re.compile(r"^(?:\d+\.|-|\*)\s+")
_COMMENT_PREFIXES = ("#", "//")


@dataclass(frozen=True, slots=True)
class ParsedPlan:
    """Commands found in a planner response."""

    commands: tuple[str, ...]
    used_fallback: bool = False


def parse_plan(response_text: str, dialect_aliases: Iterable[str]) -> ParsedPlan:
    """Parse ``response_text`` into commands.

    The first fenced block that is untagged or tagged with one of
    ``dialect_aliases`` wins. Without such a block the whole response is
    parsed and the result is flagged as a fallback. An empty result is a valid
    return value.
    """
    aliases = {alias.lower() for alias in dialect_aliases}
    interior = find_fenced_block(response_text, aliases)
    used_fallback = interior is None
    if interior is None:
        interior = response_text.strip()
        LOGGER.warning("plan_fence_missing", extra={"response_length": len(response_text)})

    commands = tuple(clean_lines(interior, skip_fences=used_fallback))
    LOGGER.debug(
        "plan_parsed",
        extra={"command_count": len(commands), "used_fallback": used_fallback},
    )
    return ParsedPlan(commands=commands, used_fallback=used_fallback)


def find_fenced_block(text: str, aliases: set[str]) -> str | None:
    """Return the interior of the first fenced block matching ``aliases``.

    Blocks tagged with another language are skipped. An opening fence with no
    closing fence ends the scan.
    """
    position = 0
    while True:
        opening = text.find(FENCE, position)
        if opening < 0:
            return None
        body_start = opening + len(FENCE)
        closing = text.find(FENCE, body_start)
        if closing < 0:
            return None

        body = text[body_start:closing]
        header, newline, rest = body.partition("\n")
        if newline:
            tag = header.strip().lower()
            interior = rest
        else:
            # single-line block, e.g. ```ls -la```
            tag = ""
            interior = header

        if not tag or tag in aliases:
            return interior
        LOGGER.debug("plan_fence_skipped", extra={"tag": tag})
        position = closing + len(FENCE)


def clean_lines(interior: str, *, skip_fences: bool = False) -> list[str]:
    commands: list[str] = []
    for raw_line in interior.splitlines():
        line = _LIST_MARKER.sub("", raw_line.strip(), count=1)
        if not line or line.startswith(_COMMENT_PREFIXES):
            continue
        if skip_fences and line.startswith(FENCE):
            continue
        commands.append(line)
    return commands
