"""Configuration: frozen Config with environment-resolved credentials."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from geminichat._http import DEFAULT_BASE_URL
from geminichat.errors import ConfigurationError
from geminichat.retry import RetryPolicy

load_dotenv()

API_KEY_ENV_VAR = "GEMINI_API_KEY"
BASE_URL_ENV_VAR = "GEMINI_BASE_URL"

DEFAULT_CHAT_MODEL = "gemini-1.5-flash-latest"
DEFAULT_MAX_FUNCTION_CALLS = 10


@dataclass(frozen=True)
class Config:
    """Immutable configuration for building a chat model.

    The API key is auto-resolved from ``GEMINI_API_KEY`` when not given.

    Example:
        config = Config(model="gemini-1.5-pro-latest")
        model = GeminiChatModel.from_config(config)
    """

    model: str = DEFAULT_CHAT_MODEL
    #: Auto-resolved from ``GEMINI_API_KEY`` when *None*.
    api_key: str | None = None
    #: Auto-resolved from ``GEMINI_BASE_URL`` when *None*.
    base_url: str | None = None
    timeout_s: float = 60.0
    use_mock: bool = False
    #: Upper bound on consecutive function-call round-trips; *None* disables it.
    max_function_calls: int | None = DEFAULT_MAX_FUNCTION_CALLS
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        """Auto-resolve environment values and validate configuration."""
        if not isinstance(self.model, str) or not self.model.strip():
            raise ConfigurationError(
                "model must be a non-empty string",
                hint=f"Pass model={DEFAULT_CHAT_MODEL!r} or another Gemini model id.",
            )
        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This is the per-request HTTP timeout in seconds.",
            )
        if self.max_function_calls is not None and self.max_function_calls < 0:
            raise ConfigurationError(
                f"max_function_calls must be >= 0 or None, got {self.max_function_calls}",
                hint="Use None to disable the guard (not recommended).",
            )

        if self.base_url is None:
            object.__setattr__(
                self, "base_url", os.environ.get(BASE_URL_ENV_VAR, DEFAULT_BASE_URL)
            )

        if self.api_key is None and not self.use_mock:
            object.__setattr__(self, "api_key", os.environ.get(API_KEY_ENV_VAR))

        if not self.use_mock and not self.api_key:
            raise ConfigurationError(
                "API key required for Gemini",
                hint=f"Set {API_KEY_ENV_VAR} environment variable or pass api_key=...",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(model={self.model!r}, base_url={self.base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, use_mock={self.use_mock})"
        )

    __repr__ = __str__
