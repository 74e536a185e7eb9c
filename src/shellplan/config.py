"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from shellplan.agent.history import DEFAULT_LOG_PREVIEW_CHARS
from shellplan.agent.machine import DEFAULT_MAX_RETRIES
from shellplan.llm.client import DEFAULT_API_URL

DEFAULT_MODEL = "gpt-4.1-mini"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables."""

    api_key: str | None
    model: str
    reasoning_effort: str | None
    api_url: str
    request_timeout: float
    max_retries: int
    history_log_chars: int
    log_dir: str | None
    log_level: str
    working_directory: str | None

    @classmethod
    def from_env(cls) -> AppConfig:
        load_dotenv()
        file_config = _load_preferred_file_config()
        openai_from_file = file_config.get("openai")
        openai_config = openai_from_file if isinstance(openai_from_file, dict) else {}

        return cls(
            api_key=(
                os.getenv("SHELLPLAN_OPENAI_API_KEY")
                or os.getenv("SHELLPLAN_API_KEY")
                or _to_optional_string(openai_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            model=(
                os.getenv("SHELLPLAN_MODEL")
                or _to_optional_string(file_config.get("model"))
                or DEFAULT_MODEL
            ),
            reasoning_effort=(
                os.getenv("SHELLPLAN_REASONING_EFFORT")
                or _to_optional_string(file_config.get("reasoning_effort"))
            ),
            api_url=(
                os.getenv("SHELLPLAN_API_URL")
                or _to_optional_string(openai_config.get("api_url"))
                or DEFAULT_API_URL
            ),
            request_timeout=_to_positive_float(
                os.getenv("SHELLPLAN_REQUEST_TIMEOUT") or file_config.get("request_timeout"),
                default=60.0,
            ),
            max_retries=_to_positive_int(
                os.getenv("SHELLPLAN_MAX_RETRIES") or file_config.get("max_retries"),
                default=DEFAULT_MAX_RETRIES,
            ),
            history_log_chars=_to_positive_int(
                os.getenv("SHELLPLAN_HISTORY_LOG_CHARS") or file_config.get("history_log_chars"),
                default=DEFAULT_LOG_PREVIEW_CHARS,
            ),
            log_dir=(
                os.getenv("SHELLPLAN_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            log_level=_to_log_level(
                os.getenv("SHELLPLAN_LOG_LEVEL") or file_config.get("log_level")
            ),
            working_directory=(
                os.getenv("SHELLPLAN_CWD") or _to_optional_string(file_config.get("cwd"))
            ),
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("SHELLPLAN_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("shellplan.config.json")
    local_override = _load_file_config("shellplan.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _to_log_level(value: object) -> str:
    if isinstance(value, str) and value.strip().upper() in LOG_LEVELS:
        return value.strip().upper()
    return "WARNING"


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_positive_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default
