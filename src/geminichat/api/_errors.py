"""Transport-side error mapping.

Every failure leaving ``GeminiApi`` is a TransportError whose ``retryable``,
``status_code`` and ``retry_after_s`` are already filled in, so
``retry.should_retry`` never has to inspect httpx exceptions or message text.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any

import httpx

from geminichat._http import RETRYABLE_STATUS_CODES
from geminichat.config import API_KEY_ENV_VAR
from geminichat.errors import RateLimitError, TransportError, exception_chain

if TYPE_CHECKING:
    from collections.abc import Iterator

# google.protobuf.Duration in its JSON form, e.g. "8s" or "1.5s".
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _http_status(value: Any) -> int | None:
    return value if isinstance(value, int) and 100 <= value <= 599 else None


def _responses(exc: BaseException) -> Iterator[tuple[BaseException, Any]]:
    for e in exception_chain(exc):
        yield e, getattr(e, "response", None)


def _error_body(response: Any) -> dict[str, Any] | None:
    """The ``error`` object of a Google API error response, if readable."""
    if not isinstance(response, httpx.Response):
        return None
    try:
        body = response.json()
    except (ValueError, httpx.ResponseNotRead):
        return None
    error = body.get("error") if isinstance(body, dict) else None
    return error if isinstance(error, dict) else None


def status_code_of(exc: BaseException) -> int | None:
    """First HTTP status found on the exception chain or its responses."""
    for e, response in _responses(exc):
        for candidate in (
            getattr(e, "status_code", None),
            getattr(e, "status", None),
            getattr(response, "status_code", None),
        ):
            status = _http_status(candidate)
            if status is not None:
                return status
    return None


def _retry_info_delay(error: dict[str, Any] | None) -> float | None:
    """``retryDelay`` of a ``google.rpc.RetryInfo`` entry in ``error.details``."""
    details = error.get("details") if error else None
    if not isinstance(details, list):
        return None
    for entry in details:
        if not isinstance(entry, dict) or "RetryInfo" not in str(entry.get("@type", "")):
            continue
        match = _DURATION_RE.match(str(entry.get("retryDelay", "")))
        if match:
            return float(match.group(1))
    return None


def _retry_after_header(response: Any) -> float | None:
    headers = getattr(response, "headers", None)
    raw = headers.get("Retry-After") if headers is not None else None
    if not isinstance(raw, str):
        return None
    try:
        seconds = float(raw.strip())
    except ValueError:
        # HTTP-date form is not worth parsing for a bounded retry.
        return None
    return seconds if seconds >= 0 else None


def retry_after_of(exc: BaseException) -> float | None:
    """Server-requested delay: an attribute, a Retry-After header or RetryInfo."""
    for e, response in _responses(exc):
        explicit = getattr(e, "retry_after", None)
        if isinstance(explicit, (int, float)) and explicit >= 0:
            return float(explicit)
        delay = _retry_after_header(response)
        if delay is None:
            delay = _retry_info_delay(_error_body(response))
        if delay is not None:
            return delay
    return None


def _auth_hint(status_code: int | None, detail: str) -> str | None:
    # Gemini rejects a bad key with 400 rather than 401/403.
    mentions_key = "api key" in detail.lower() or "api_key" in detail.lower()
    if status_code in (401, 403) or (status_code == 400 and mentions_key):
        return f"Check credentials/permissions (set {API_KEY_ENV_VAR} or Config.api_key)."
    return None


def wrap_transport_error(
    exc: BaseException,
    *,
    phase: str,
    message: str | None = None,
    hint: str | None = None,
) -> TransportError:
    """Turn an httpx/HTTP failure into a TransportError for *phase*.

    An existing TransportError is returned as-is with missing ``phase`` and
    ``hint`` filled in. Cancellation is re-raised.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    if isinstance(exc, TransportError):
        exc.phase = exc.phase or phase
        exc.hint = exc.hint or hint
        return exc

    status_code = status_code_of(exc)
    retry_after_s = retry_after_of(exc)
    if status_code is not None:
        retryable = retry_after_s is not None or status_code in RETRYABLE_STATUS_CODES
    else:
        retryable = retry_after_s is not None or any(
            isinstance(e, httpx.RequestError) for e in exception_chain(exc)
        )

    error = _error_body(getattr(exc, "response", None))
    detail = error["message"] if error and isinstance(error.get("message"), str) else str(exc)

    text = message or f"Gemini {phase} failed"
    if status_code is not None:
        text += f" (status={status_code})"
    if detail:
        text += f": {detail}"

    cls = RateLimitError if status_code == 429 else TransportError
    return cls(
        text,
        hint=hint if hint is not None else _auth_hint(status_code, detail),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        phase=phase,
    )
