"""Single-shot function-calling loop."""

from __future__ import annotations

import json

import pytest

from geminichat.api.types import (
    Content,
    FunctionCall,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponsePart,
    GenerateContentRequest,
    TextPart,
    Tool,
)
from geminichat.errors import (
    FunctionExecutionError,
    TooManyFunctionCallsError,
    TransportError,
    UnknownFunctionError,
)
from geminichat.orchestrator import (
    FunctionCallingOrchestrator,
    OrchestratorState,
    TransportAdapter,
)
from geminichat.registry import FunctionRegistry
from geminichat.request import GeminiRequest
from geminichat.retry import RetryPolicy
from tests.helpers import FAST_RETRY, Recorder, ScriptedTransport, call_response, text_response

pytestmark = pytest.mark.unit


def _weather_request() -> GeminiRequest:
    return GeminiRequest(
        model="gemini-1.5-flash-latest",
        request=GenerateContentRequest(
            contents=[Content.from_text("weather in Paris?", role="user")],
            tools=[Tool(function_declarations=[FunctionDeclaration(name="get_weather")])],
        ),
    )


def _setup(
    script: list, *, result: str = '{"temp": 15}', **kwargs
) -> tuple[FunctionCallingOrchestrator, ScriptedTransport, Recorder]:
    transport = ScriptedTransport(script=script)
    recorder = Recorder(result=result)
    registry = FunctionRegistry()
    registry.register(FunctionDeclaration(name="get_weather"), recorder)
    kwargs.setdefault("retry_policy", FAST_RETRY)
    orchestrator = FunctionCallingOrchestrator(TransportAdapter(transport), registry, **kwargs)
    return orchestrator, transport, recorder


@pytest.mark.asyncio
async def test_response_without_function_call_is_returned_as_is() -> None:
    final = text_response("4")
    orchestrator, transport, recorder = _setup([final])

    assert await orchestrator.run(_weather_request()) is final
    assert len(transport.requests) == 1
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_weather_scenario_invokes_once_and_resubmits_with_history() -> None:
    orchestrator, transport, recorder = _setup(
        [call_response("get_weather", {"location": "Paris"}), text_response("15 degrees")]
    )
    request = _weather_request()

    response = await orchestrator.run(request)

    assert response.candidates[0].content is not None
    assert response.candidates[0].content.parts == [TextPart(text="15 degrees")]
    assert [json.loads(c) for c in recorder.calls] == [{"location": "Paris"}]

    assert len(transport.requests) == 2
    model, resubmitted = transport.requests[1]
    assert model == "gemini-1.5-flash-latest"
    assert resubmitted.tools == request.request.tools
    history = resubmitted.contents
    assert [c.role for c in history] == ["user", "model", "user"]
    assert isinstance(history[1].parts[0], FunctionCallPart)
    function_response = history[2].parts[0]
    assert isinstance(function_response, FunctionResponsePart)
    assert function_response.function_response.name == "get_weather"
    assert function_response.function_response.response == {"temp": 15}
    # The caller's request is untouched.
    assert len(request.request.contents) == 1


@pytest.mark.asyncio
async def test_state_transitions_are_reported() -> None:
    states: list[OrchestratorState] = []
    orchestrator, _, _ = _setup(
        [call_response("get_weather", {}), text_response("done")],
        on_state_change=states.append,
    )

    await orchestrator.run(_weather_request())

    assert states == [
        OrchestratorState.AWAITING_MODEL_RESPONSE,
        OrchestratorState.EXECUTING_FUNCTION,
        OrchestratorState.AWAITING_MODEL_RESPONSE,
        OrchestratorState.DONE,
    ]


@pytest.mark.asyncio
async def test_too_many_function_calls() -> None:
    orchestrator, transport, recorder = _setup(
        [call_response("get_weather", {})] * 5, max_function_calls=2
    )

    with pytest.raises(TooManyFunctionCallsError) as exc_info:
        await orchestrator.run(_weather_request())

    assert exc_info.value.limit == 2
    assert len(recorder.calls) == 2
    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_guard_can_be_disabled() -> None:
    script = [call_response("get_weather", {})] * 12 + [text_response("finally")]
    orchestrator, _, recorder = _setup(script, max_function_calls=None)

    await orchestrator.run(_weather_request())

    assert len(recorder.calls) == 12


@pytest.mark.asyncio
async def test_retry_does_not_reinvoke_executed_callback() -> None:
    orchestrator, transport, recorder = _setup(
        [
            call_response("get_weather", {"location": "Paris"}),
            TransportError("unavailable", retryable=True, status_code=503),
            text_response("15 degrees"),
        ]
    )

    await orchestrator.run(_weather_request())

    assert len(recorder.calls) == 1
    assert len(transport.requests) == 3
    # The retried exchange resent the same history.
    assert transport.requests[1][1] == transport.requests[2][1]


@pytest.mark.asyncio
async def test_exhausted_transport_error_surfaces_unchanged() -> None:
    error = TransportError("unavailable", retryable=True)
    orchestrator, transport, _ = _setup(
        [error], retry_policy=RetryPolicy.none()
    )

    with pytest.raises(TransportError) as exc_info:
        await orchestrator.run(_weather_request())

    assert exc_info.value is error
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_callback_failure_surfaces_and_stops_the_loop() -> None:
    transport = ScriptedTransport(script=[call_response("get_weather", {})])
    registry = FunctionRegistry()

    def broken(_: str) -> str:
        raise ValueError("no data")

    registry.register(FunctionDeclaration(name="get_weather"), broken)
    orchestrator = FunctionCallingOrchestrator(TransportAdapter(transport), registry)

    with pytest.raises(FunctionExecutionError) as exc_info:
        await orchestrator.run(_weather_request())

    assert isinstance(exc_info.value.__cause__, ValueError)
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_unknown_function_requested_by_model() -> None:
    orchestrator, _, _ = _setup([call_response("launch_rockets", {})])

    with pytest.raises(UnknownFunctionError):
        await orchestrator.run(_weather_request())


@pytest.mark.asyncio
async def test_missing_args_and_scalar_results() -> None:
    orchestrator, transport, recorder = _setup(
        [call_response("get_weather", None), text_response("ok")], result='"sunny"'
    )

    await orchestrator.run(_weather_request())

    assert recorder.calls == ["{}"]
    function_response = transport.requests[1][1].contents[2].parts[0]
    assert isinstance(function_response, FunctionResponsePart)
    assert function_response.function_response.response == {"result": "sunny"}


@pytest.mark.asyncio
async def test_injected_detector_and_executor() -> None:
    executed: list[tuple[str, str]] = []

    def executor(name: str, arguments_json: str) -> str:
        executed.append((name, arguments_json))
        return "{}"

    def detect_on_text(response):
        part = response.first_part()
        if isinstance(part, TextPart) and part.text == "CALL":
            return FunctionCall(name="custom", args={"x": 1})
        return None

    transport = ScriptedTransport(script=[text_response("CALL"), text_response("done")])
    orchestrator = FunctionCallingOrchestrator(
        TransportAdapter(transport),
        FunctionRegistry(),
        function_call_detector=detect_on_text,
        function_executor=executor,
    )

    response = await orchestrator.run(_weather_request())

    assert response.first_part() == TextPart(text="done")
    assert [(n, json.loads(a)) for n, a in executed] == [("custom", {"x": 1})]
