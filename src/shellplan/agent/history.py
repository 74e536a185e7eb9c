"""Append-only attempt history and its rendering into planner context."""

from __future__ import annotations

from dataclasses import dataclass, replace

from shellplan.agent.models import HistoryEntry, ModelAttempt, UserFeedback

DEFAULT_LOG_PREVIEW_CHARS = 500
TRUNCATION_MARKER = "..."
HISTORY_HEADER = "--- Previous Attempt History ---"
HISTORY_FOOTER = "--- End of History ---"
FEEDBACK_PREFIX = "The previous attempt failed or was insufficient. Reason: "


@dataclass(frozen=True, slots=True)
class HistoryBuffer:
    """Chronological record of feedback and plan attempts for one task.

    The buffer is a value: ``append`` and ``with_execution_log`` return a new
    buffer and leave the receiver untouched.
    """

    entries: tuple[HistoryEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def append(self, entry: HistoryEntry) -> HistoryBuffer:
        return HistoryBuffer(entries=(*self.entries, entry))

    def with_execution_log(self, log: str) -> HistoryBuffer:
        """Fill in the log of the most recent plan attempt.

        The log is attached only once; a later call leaves an already logged
        attempt as it is.
        """
        for index in range(len(self.entries) - 1, -1, -1):
            entry = self.entries[index]
            if not isinstance(entry, ModelAttempt):
                continue
            if entry.execution_log is not None:
                return self
            updated = replace(entry, execution_log=log)
            return HistoryBuffer(
                entries=(*self.entries[:index], updated, *self.entries[index + 1 :])
            )
        return self

    def render(self, *, max_log_chars: int = DEFAULT_LOG_PREVIEW_CHARS) -> str:
        """Render entries, oldest first, as plain-text planner context."""
        if not self.entries:
            return ""

        lines = [HISTORY_HEADER]
        for entry in self.entries:
            if isinstance(entry, UserFeedback):
                lines.append(f"User Feedback: {FEEDBACK_PREFIX}{entry.text}")
                continue
            lines.append("Previously Proposed Plan:")
            lines.append("```")
            lines.append(entry.plan_code)
            lines.append("```")
            if entry.execution_log:
                lines.append("Execution Log:")
                lines.append(_preview(entry.execution_log, max_log_chars))
        lines.append(HISTORY_FOOTER)
        return "\n".join(lines)


def _preview(log: str, max_chars: int) -> str:
    if len(log) <= max_chars:
        return log
    return f"{log[:max_chars]}{TRUNCATION_MARKER}"
