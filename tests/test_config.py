from __future__ import annotations

import pytest

from siteforge.core.config import DEFAULT_MODEL, Settings
from siteforge.core.errors import ConfigurationError


def test_defaults() -> None:
    settings = Settings.from_env({})
    assert settings.api_key is None
    assert settings.model == DEFAULT_MODEL
    assert settings.concurrency == 4
    assert settings.max_attempts == 3
    assert settings.revision_limit == 20
    assert settings.root_file == "index.html"


def test_values_from_environment() -> None:
    settings = Settings.from_env(
        {
            "GEMINI_API_KEY": "secret",
            "SITEFORGE_MODEL": "gemini-2.5-pro",
            "SITEFORGE_CONCURRENCY": "8",
            "SITEFORGE_BASE_DELAY": "0.5",
            "SITEFORGE_JITTER": "0",
            "SITEFORGE_REVISION_LIMIT": "5",
        }
    )
    assert settings.api_key == "secret"
    assert settings.model == "gemini-2.5-pro"
    assert settings.concurrency == 8
    assert settings.base_delay == 0.5
    assert settings.jitter == 0.0
    assert settings.revision_limit == 5


def test_google_api_key_takes_precedence() -> None:
    settings = Settings.from_env({"GOOGLE_API_KEY": "first", "GEMINI_API_KEY": "second"})
    assert settings.api_key == "first"


def test_fast_mode_caps_attempts() -> None:
    assert Settings.from_env({"SITEFORGE_FAST": "1"}).max_attempts == 2
    assert Settings.from_env({"SITEFORGE_FAST": "yes", "SITEFORGE_MAX_ATTEMPTS": "1"}).max_attempts == 1


@pytest.mark.parametrize(
    "env",
    [
        {"SITEFORGE_CONCURRENCY": "many"},
        {"SITEFORGE_CONCURRENCY": "0"},
        {"SITEFORGE_BASE_DELAY": "-1"},
        {"SITEFORGE_MAX_ATTEMPTS": "2.5"},
    ],
)
def test_invalid_values_name_the_variable(env) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        Settings.from_env(env)
    assert next(iter(env)) in str(excinfo.value)
