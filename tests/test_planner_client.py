import http.client
import io
import json
from urllib.error import HTTPError, URLError

import pytest

from shellplan.errors import InitializationError, PlannerUnavailable
from shellplan.llm.client import PlannerClient, build_prompt
from shellplan.shell import OsFamily


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def read(self):
        return self.body


def _output_body(text: str) -> bytes:
    return json.dumps(
        {"output": [{"content": [{"type": "output_text", "text": text}]}]}
    ).encode("utf-8")


def test_ensure_ready_requires_api_key() -> None:
    with pytest.raises(InitializationError, match="Missing API key"):
        PlannerClient(api_key=None, model="gpt-4.1-mini").ensure_ready()

    PlannerClient(api_key="key", model="gpt-4.1-mini").ensure_ready()


def test_prompt_asks_for_fenced_block_in_os_dialect() -> None:
    prompt = build_prompt("list files", "", OsFamily.WINDOWS)

    assert "The user's operating system is: Windows." in prompt
    assert "'list files'" in prompt
    assert "```cmd\ncommand 1" in prompt
    assert "Generate a sequence of shell commands" in prompt


def test_prompt_requests_revision_when_history_present() -> None:
    prompt = build_prompt("list files", "--- Previous Attempt History ---", OsFamily.POSIX)

    assert "--- Previous Attempt History ---" in prompt
    assert "*revised*" in prompt
    assert "```bash" in prompt


def test_payload_includes_reasoning_effort_when_configured() -> None:
    client = PlannerClient(api_key=None, model="gpt-5.2", reasoning_effort="medium")

    payload = client._build_payload("task", "", OsFamily.POSIX)

    assert payload["reasoning"] == {"effort": "medium"}
    assert payload["model"] == "gpt-5.2"


def test_payload_omits_reasoning_effort_when_unset() -> None:
    client = PlannerClient(api_key=None, model="gpt-4.1-mini")

    payload = client._build_payload("task", "", OsFamily.POSIX)

    assert "reasoning" not in payload


def test_request_plan_returns_output_text(monkeypatch) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini")
    captured = {}

    def fake_urlopen(req, timeout):
        captured["auth"] = req.get_header("Authorization")
        captured["timeout"] = timeout
        return FakeResponse(_output_body("```bash\nls\n```"))

    monkeypatch.setattr("shellplan.llm.client.request.urlopen", fake_urlopen)

    text = client.request_plan("list files", "", OsFamily.POSIX)

    assert text == "```bash\nls\n```"
    assert captured["auth"] == "Bearer secret"
    assert captured["timeout"] == 60.0


def test_request_plan_raises_on_http_error_with_excerpt(monkeypatch) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini")

    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(
            url="https://example.com",
            code=400,
            msg="Bad Request",
            hdrs=None,
            fp=io.BytesIO(b'{"error":{"message":"invalid model"}}'),
        )

    monkeypatch.setattr("shellplan.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(PlannerUnavailable) as excinfo:
        client.request_plan("task", "", OsFamily.POSIX)

    assert "HTTP 400" in str(excinfo.value)
    assert "invalid model" in str(excinfo.value)


def test_request_plan_raises_on_transport_error(monkeypatch) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini")

    def fake_urlopen(*_args, **_kwargs):
        raise URLError("connection refused")

    monkeypatch.setattr("shellplan.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(PlannerUnavailable, match="transport error"):
        client.request_plan("task", "", OsFamily.POSIX)


@pytest.mark.parametrize(
    "error",
    [
        http.client.RemoteDisconnected("Remote end closed connection without response"),
        http.client.IncompleteRead(b"partial"),
        ConnectionResetError("connection reset by peer"),
    ],
)
def test_request_plan_wraps_connection_failures(monkeypatch, error: Exception) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini")

    def fake_urlopen(*_args, **_kwargs):
        raise error

    monkeypatch.setattr("shellplan.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(PlannerUnavailable, match="transport error") as excinfo:
        client.request_plan("task", "", OsFamily.POSIX)

    assert excinfo.value.__cause__ is error


def test_request_plan_raises_on_timeout(monkeypatch) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini", timeout=5)

    def fake_urlopen(*_args, **_kwargs):
        raise TimeoutError

    monkeypatch.setattr("shellplan.llm.client.request.urlopen", fake_urlopen)

    with pytest.raises(PlannerUnavailable, match="timed out after 5.0s"):
        client.request_plan("task", "", OsFamily.POSIX)


def test_request_plan_raises_on_invalid_json(monkeypatch) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini")
    monkeypatch.setattr(
        "shellplan.llm.client.request.urlopen", lambda *_a, **_k: FakeResponse(b"not-json")
    )

    with pytest.raises(PlannerUnavailable, match="parsing error"):
        client.request_plan("task", "", OsFamily.POSIX)


def test_request_plan_raises_when_no_output_text(monkeypatch) -> None:
    client = PlannerClient(api_key="secret", model="gpt-4.1-mini")
    body = b'{"output":[{"content":[{"type":"reasoning","text":"ignored"}]}]}'
    monkeypatch.setattr(
        "shellplan.llm.client.request.urlopen", lambda *_a, **_k: FakeResponse(body)
    )

    with pytest.raises(PlannerUnavailable, match="empty response"):
        client.request_plan("task", "", OsFamily.POSIX)


def test_extract_output_text_joins_text_parts() -> None:
    payload = {
        "output": [
            {"type": "reasoning", "content": []},
            {
                "content": [
                    {"type": "output_text", "text": "```bash\n"},
                    {"type": "output_text", "text": "ls\n```"},
                ]
            },
        ]
    }

    assert PlannerClient._extract_output_text(payload) == "```bash\nls\n```"
