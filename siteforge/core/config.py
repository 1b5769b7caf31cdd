"""Runtime settings read from the environment (and an optional ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_MODEL = "gemini-2.5-flash"


def _env_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key, "")
    if raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{key} must not be negative, got {value}")
    return value


def _env_flag(env: Mapping[str, str], key: str) -> bool:
    return env.get(key, "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    concurrency: int = 4
    max_attempts: int = 3
    base_delay: float = 1.0
    jitter: float = 1.0
    revision_limit: int = 20
    root_file: str = "index.html"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_dotenv()
            env = os.environ
        api_key = (
            env.get("GOOGLE_API_KEY")
            or env.get("GEMINI_API_KEY")
            or env.get("GOOGLE_GENAI_API_KEY")
            or None
        )
        max_attempts = _env_int(env, "SITEFORGE_MAX_ATTEMPTS", 3)
        if _env_flag(env, "SITEFORGE_FAST"):
            max_attempts = min(max_attempts, 2)
        return cls(
            api_key=api_key,
            model=env.get("SITEFORGE_MODEL", "").strip() or DEFAULT_MODEL,
            concurrency=_env_int(env, "SITEFORGE_CONCURRENCY", 4),
            max_attempts=max_attempts,
            base_delay=_env_float(env, "SITEFORGE_BASE_DELAY", 1.0),
            jitter=_env_float(env, "SITEFORGE_JITTER", 1.0),
            revision_limit=_env_int(env, "SITEFORGE_REVISION_LIMIT", 20),
            root_file=env.get("SITEFORGE_ROOT_FILE", "").strip() or "index.html",
        )
