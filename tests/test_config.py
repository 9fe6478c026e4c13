"""Configuration boundary tests."""

from __future__ import annotations

import pytest

from geminichat._http import DEFAULT_BASE_URL
from geminichat.config import DEFAULT_CHAT_MODEL, Config
from geminichat.errors import ConfigurationError

pytestmark = pytest.mark.unit


def test_config_creation_with_mock_mode() -> None:
    """Config can be created with mock mode (no API key needed)."""
    cfg = Config(use_mock=True)
    assert cfg.model == DEFAULT_CHAT_MODEL
    assert cfg.api_key is None
    assert cfg.base_url == DEFAULT_BASE_URL


def test_config_auto_resolves_api_key_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    assert Config().api_key == "env-key"


def test_explicit_api_key_takes_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    assert Config(api_key="explicit-key").api_key == "explicit-key"


def test_base_url_resolves_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_BASE_URL", "http://localhost:8080")

    assert Config(use_mock=True).base_url == "http://localhost:8080"


def test_missing_api_key_raises_clear_error() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        Config()

    assert "API key" in str(exc_info.value)
    assert exc_info.value.hint is not None
    assert "GEMINI_API_KEY" in exc_info.value.hint


@pytest.mark.parametrize(
    "kwargs",
    [
        {"model": "  "},
        {"timeout_s": 0},
        {"max_function_calls": -1},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        Config(use_mock=True, **kwargs)


def test_repr_redacts_api_key() -> None:
    cfg = Config(api_key="super-secret")

    assert "super-secret" not in repr(cfg)
    assert "[REDACTED]" in str(cfg)
