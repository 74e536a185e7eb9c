"""Thin planner client that asks the model for a fenced block of commands."""

from __future__ import annotations

import http.client
import json
import logging
from urllib import request
from urllib.error import HTTPError, URLError

from shellplan.errors import InitializationError, PlannerUnavailable
from shellplan.shell import OsFamily

DEFAULT_API_URL = "https://api.openai.com/v1/responses"
LOGGER = logging.getLogger(__name__)


class PlannerClient:
    """Small HTTP client for single-shot plan generation."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        reasoning_effort: str | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.reasoning_effort = reasoning_effort
        self.api_url = api_url
        self.timeout = timeout

    def ensure_ready(self) -> None:
        if not self.api_key:
            msg = "Missing API key: set SHELLPLAN_OPENAI_API_KEY or SHELLPLAN_API_KEY."
            raise InitializationError(msg)

    def request_plan(self, task: str, history_context: str, os_family: OsFamily) -> str:
        """Return the raw model text for ``task``.

        Raises ``PlannerUnavailable`` on any transport or decoding failure and
        when the model returns no text.
        """
        payload = self._build_payload(task, history_context, os_family)
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        LOGGER.debug(
            "planner_request_prepared",
            extra={
                "api_url": self.api_url,
                "model": self.model,
                "payload_bytes": len(body),
                "has_history": bool(history_context),
                "os_family": os_family.value,
            },
        )

        req = request.Request(self.api_url, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                raw_response = json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "planner_request_http_error",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Planner request failed with HTTP {exc.code}: {exc.reason}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            raise PlannerUnavailable(details) from exc
        except URLError as exc:
            LOGGER.error(
                "planner_request_transport_error",
                extra={"api_url": self.api_url, "model": self.model, "reason": str(exc.reason)},
            )
            raise PlannerUnavailable(f"Planner request transport error: {exc.reason}") from exc
        except TimeoutError as exc:
            LOGGER.error(
                "planner_request_timeout",
                extra={"api_url": self.api_url, "timeout_seconds": self.timeout},
            )
            raise PlannerUnavailable(
                f"Planner request timed out after {self.timeout:.1f}s"
            ) from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error(
                "planner_response_parse_error",
                extra={"api_url": self.api_url, "model": self.model, "error": str(exc)},
            )
            raise PlannerUnavailable(f"Planner response parsing error: {exc}") from exc
        except (OSError, http.client.HTTPException) as exc:
            LOGGER.error(
                "planner_request_transport_error",
                extra={"api_url": self.api_url, "model": self.model, "reason": str(exc)},
            )
            raise PlannerUnavailable(
                f"Planner request transport error: {type(exc).__name__}: {exc}"
            ) from exc

        text = self._extract_output_text(raw_response)
        if not text.strip():
            raise PlannerUnavailable("Planner returned an empty response.")
        LOGGER.debug("planner_response_received", extra={"response_length": len(text)})
        return text

    def _build_payload(
        self, task: str, history_context: str, os_family: OsFamily
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": self.model,
            "input": [
                {"role": "user", "content": build_prompt(task, history_context, os_family)}
            ],
        }
        if self.reasoning_effort:
            payload["reasoning"] = {"effort": self.reasoning_effort}
        return payload

    @staticmethod
    def _extract_output_text(payload: object) -> str:
        if not isinstance(payload, dict):
            return ""
        output_items = payload.get("output")
        if not isinstance(output_items, list):
            return ""

        parts: list[str] = []
        for item in output_items:
            if not isinstance(item, dict):
                continue
            content_items = item.get("content")
            if not isinstance(content_items, list):
                continue
            for content in content_items:
                if not isinstance(content, dict):
                    continue
                content_text = content.get("text")
                if content.get("type") == "output_text" and isinstance(content_text, str):
                    parts.append(content_text)
        return "".join(parts)

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt


def build_prompt(task: str, history_context: str, os_family: OsFamily) -> str:
    """Assemble the single user prompt sent to the planner."""
    syntax = os_family.syntax
    parts = [
        "You are an AI assistant that helps execute tasks on a user's local computer.",
        f"The user's operating system is: {os_family.label}.",
        f"The user wants to achieve the following task: '{task}'",
        history_context,
        (
            "Please provide a *new*, *revised* sequence of shell commands based on the"
            " feedback to achieve the original task."
            if history_context
            else "Generate a sequence of shell commands to accomplish this task."
        ),
        (
            "IMPORTANT: Output *only* the commands, each on a new line, enclosed in a"
            " single code block. Do not add explanation or commentary before or after"
            " the block."
        ),
        f"The code block should look like this:\n```{syntax}\ncommand 1\ncommand 2\n...\n```",
    ]
    return "\n".join(part for part in parts if part)
