"""Exception hierarchy and transport error mapping."""

from __future__ import annotations

import httpx
import pytest

from geminichat.api._errors import wrap_transport_error
from geminichat.errors import (
    ConfigurationError,
    DuplicateNameError,
    FunctionExecutionError,
    GeminiChatError,
    RateLimitError,
    TooManyFunctionCallsError,
    TransportError,
    UnknownFunctionError,
    exception_chain,
)

pytestmark = pytest.mark.unit


def _status_error(status: int, *, json: object | None = None, headers=None):
    request = httpx.Request("POST", "https://example.test/v1beta/models/m:generateContent")
    response = httpx.Response(status, json=json, headers=headers, request=request)
    return httpx.HTTPStatusError("boom", request=request, response=response)


def test_transport_error_structured_metadata() -> None:
    err = TransportError(
        "boom",
        hint="do this",
        retryable=True,
        status_code=503,
        retry_after_s=2.0,
        phase="generate",
    )

    assert str(err) == "boom"
    assert err.hint == "do this"
    assert err.retryable is True
    assert err.status_code == 503
    assert err.retry_after_s == 2.0
    assert err.phase == "generate"


def test_transport_error_defaults_to_none() -> None:
    err = TransportError("fail")
    assert err.hint is None
    assert err.retryable is None
    assert err.status_code is None
    assert err.retry_after_s is None
    assert err.phase is None


def test_subclass_hierarchy() -> None:
    """Every error is catchable as GeminiChatError."""
    for err in (
        ConfigurationError("bad"),
        DuplicateNameError("f"),
        UnknownFunctionError(["f"]),
        FunctionExecutionError("f", ValueError("x")),
        TooManyFunctionCallsError(3),
        RateLimitError("slow down", status_code=429),
    ):
        assert isinstance(err, GeminiChatError)
    assert isinstance(RateLimitError("x"), TransportError)


def test_unknown_function_error_lists_every_name_sorted() -> None:
    err = UnknownFunctionError({"zeta", "alpha"})
    assert err.names == ("alpha", "zeta")
    assert "'alpha'" in str(err) and "'zeta'" in str(err)
    assert err.hint is not None


def test_function_execution_error_keeps_name_and_cause() -> None:
    cause = KeyError("city")
    err = FunctionExecutionError("get_weather", cause)
    assert err.function_name == "get_weather"
    assert err.cause is cause
    assert "get_weather" in str(err)


def test_wrap_maps_429_to_rate_limit_with_retry_after() -> None:
    err = wrap_transport_error(
        _status_error(429, headers={"Retry-After": "7"}), phase="generate"
    )

    assert isinstance(err, RateLimitError)
    assert err.status_code == 429
    assert err.retry_after_s == 7.0
    assert err.retryable is True
    assert err.phase == "generate"


def test_wrap_reads_retry_info_from_error_body() -> None:
    body = {
        "error": {
            "message": "Resource exhausted",
            "details": [
                {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "8s"}
            ],
        }
    }
    err = wrap_transport_error(_status_error(503, json=body), phase="generate")

    assert err.retry_after_s == 8.0
    assert "Resource exhausted" in str(err)


def test_wrap_marks_client_errors_not_retryable_with_auth_hint() -> None:
    body = {"error": {"message": "API key not valid. Please pass a valid API key."}}
    err = wrap_transport_error(_status_error(400, json=body), phase="generate")

    assert err.retryable is False
    assert err.status_code == 400
    assert err.hint is not None and "GEMINI_API_KEY" in err.hint


def test_wrap_marks_network_errors_retryable() -> None:
    err = wrap_transport_error(httpx.ConnectError("refused"), phase="stream")

    assert err.retryable is True
    assert err.status_code is None
    assert err.phase == "stream"


def test_wrap_returns_existing_transport_error_with_phase_filled() -> None:
    original = TransportError("already mapped")
    assert wrap_transport_error(original, phase="generate") is original
    assert original.phase == "generate"


def test_exception_chain_prefers_cause_and_respects_from_none() -> None:
    root = httpx.ConnectError("refused")
    try:
        try:
            raise KeyError("ignored")
        except KeyError:
            raise RuntimeError("wrapped") from root
    except RuntimeError as e:
        wrapped = e

    assert list(exception_chain(wrapped)) == [wrapped, root]

    try:
        try:
            raise ValueError("hidden")
        except ValueError:
            raise RuntimeError("clean") from None
    except RuntimeError as e:
        clean = e

    assert list(exception_chain(clean)) == [clean]


def test_exception_chain_stops_on_a_cycle() -> None:
    first = RuntimeError("first")
    second = ValueError("second")
    first.__context__ = second
    second.__context__ = first

    assert list(exception_chain(first)) == [first, second]


def test_wrap_finds_status_behind_a_plain_wrapper() -> None:
    inner = _status_error(503)
    try:
        raise RuntimeError("while decoding") from inner
    except RuntimeError as e:
        outer = e

    err = wrap_transport_error(outer, phase="generate")

    assert err.status_code == 503
    assert err.retryable is True
