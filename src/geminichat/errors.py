"""Exception hierarchy for geminichat."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class GeminiChatError(Exception):
    """Base exception for all geminichat errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(GeminiChatError):
    """Configuration or option validation failed."""


class DuplicateNameError(GeminiChatError):
    """A function with the same name is already registered."""

    def __init__(self, name: str, *, hint: str | None = None) -> None:
        super().__init__(f"Function already registered: {name!r}", hint=hint)
        self.name = name


class UnknownFunctionError(GeminiChatError):
    """One or more function names are not registered."""

    def __init__(self, names: Iterable[str], *, hint: str | None = None) -> None:
        self.names = tuple(sorted(names))
        listed = ", ".join(repr(n) for n in self.names)
        super().__init__(
            f"No function callback found for: {listed}",
            hint=hint or "Register the function before enabling it in options.",
        )


class FunctionExecutionError(GeminiChatError):
    """A registered function callback raised while executing.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, function_name: str, cause: BaseException) -> None:
        super().__init__(f"Function {function_name!r} failed: {cause}")
        self.function_name = function_name
        self.cause = cause


class UnsupportedMediaError(GeminiChatError):
    """Attached media cannot be sent inline."""


class UnsupportedMessageTypeError(GeminiChatError):
    """A conversation message has a type Gemini cannot represent."""


class SerializationError(GeminiChatError):
    """JSON encoding/decoding of arguments, results or schemas failed."""


class TooManyFunctionCallsError(GeminiChatError):
    """The model kept requesting functions past the configured limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Exceeded {limit} consecutive function call round-trips",
            hint="Raise max_function_calls or check the function results for loops.",
        )
        self.limit = limit


class TransportError(GeminiChatError):
    """An exchange with the remote API failed.

    Transports attach retry metadata so the retry layer can decide without
    brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.phase = phase


class RateLimitError(TransportError):
    """Rate limit exceeded (HTTP 429)."""


def exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and the exceptions behind it, in traceback order.

    Each step follows ``__cause__``, or ``__context__`` unless it was
    suppressed with ``raise ... from None``. A cycle ends the walk.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
