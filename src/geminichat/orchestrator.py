"""Function-calling orchestration.

The orchestrator drives the loop between "the model asks for a function"
and "the function's result is fed back to the model". It works on complete
responses; the streaming path first regroups chunks into windows that each
stand for one complete response, then applies the same transition.

State machine, per exchange::

    AWAITING_MODEL_RESPONSE --function call--> EXECUTING_FUNCTION
    EXECUTING_FUNCTION      --resubmit------> AWAITING_MODEL_RESPONSE
    AWAITING_MODEL_RESPONSE --anything else-> DONE

Only the first part of the first candidate is inspected, so a response
carrying several function calls acts on the first one only.
"""

from __future__ import annotations

from contextlib import aclosing
from enum import Enum
import functools
import logging
from typing import TYPE_CHECKING, Any, Protocol

from geminichat.api.types import (
    Candidate,
    Content,
    FinishReason,
    FunctionCall,
    FunctionCallPart,
    FunctionResponse,
    FunctionResponsePart,
    GenerateContentResponse,
    Role,
)
from geminichat.config import DEFAULT_MAX_FUNCTION_CALLS
from geminichat.errors import TooManyFunctionCallsError
from geminichat.retry import RetryPolicy, retry_async
from geminichat.schema import args_to_json, json_to_struct

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from geminichat.api.base import Transport
    from geminichat.registry import FunctionRegistry
    from geminichat.request import GeminiRequest

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    AWAITING_MODEL_RESPONSE = "awaiting_model_response"
    EXECUTING_FUNCTION = "executing_function"
    DONE = "done"


# =============================================================================
# Injected capabilities
# =============================================================================


class ModelAdapter(Protocol):
    """Request/response adapter: one network exchange per call."""

    async def submit(self, request: GeminiRequest) -> GenerateContentResponse: ...

    def submit_streaming(
        self, request: GeminiRequest
    ) -> AsyncIterator[GenerateContentResponse]: ...


class TransportAdapter:
    """ModelAdapter over a Transport (``GeminiApi``, ``MockTransport``...)."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def submit(self, request: GeminiRequest) -> GenerateContentResponse:
        return await self.transport.submit(request.model, request.request)

    def submit_streaming(
        self, request: GeminiRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        return self.transport.submit_streaming(request.model, request.request)


def extract_history(request: GeminiRequest) -> list[Content]:
    """Default history extractor: the request's contents, copied."""
    return list(request.request.contents)


def detect_function_call(response: GenerateContentResponse) -> FunctionCall | None:
    """Default detector: the first candidate's first part, if it is a call."""
    part = response.first_part()
    if isinstance(part, FunctionCallPart):
        return part.function_call
    return None


# =============================================================================
# Stream windows
# =============================================================================


async def window_chunks(
    chunks: AsyncIterator[GenerateContentResponse],
    *,
    detector: Callable[[GenerateContentResponse], FunctionCall | None] = (
        detect_function_call
    ),
) -> AsyncIterator[list[GenerateContentResponse]]:
    """Group streamed chunks into windows that each form one logical response.

    A chunk starting with a function call opens a window; following chunks
    join it until one whose first candidate finished with ``STOP`` (that
    chunk included). Every other chunk is a window of its own. End of stream
    closes an open window. Closing this iterator early drops the partial
    window.
    """
    window: list[GenerateContentResponse] = []
    async for chunk in chunks:
        if not window and detector(chunk) is None:
            yield [chunk]
            continue
        window.append(chunk)
        if chunk.first_finish_reason() == FinishReason.STOP:
            logger.debug("Function-call window closed after %d chunk(s)", len(window))
            yield window
            window = []
    if window:
        logger.debug("Stream ended inside a function-call window (%d chunk(s))", len(window))
        yield window


def merge_window(window: list[GenerateContentResponse]) -> GenerateContentResponse:
    """Merge a window of chunks into one complete response.

    Parts are concatenated in arrival order per candidate index; the last
    finish reason, safety ratings, usage and prompt feedback seen win.
    """
    if len(window) == 1:
        return window[0]

    merged: dict[int, dict[str, Any]] = {}
    usage = None
    feedback = None
    for chunk in window:
        for position, candidate in enumerate(chunk.candidates):
            index = candidate.index if candidate.index is not None else position
            slot = merged.setdefault(index, {"role": None, "parts": []})
            if candidate.content is not None:
                slot["role"] = candidate.content.role or slot["role"]
                slot["parts"].extend(candidate.content.parts)
            for key in ("finish_reason", "safety_ratings", "citation_metadata", "token_count"):
                value = getattr(candidate, key)
                if value is not None:
                    slot[key] = value
        usage = chunk.usage_metadata or usage
        feedback = chunk.prompt_feedback or feedback

    candidates = [
        Candidate(
            content=Content(role=slot.pop("role"), parts=slot.pop("parts")),
            index=index,
            **slot,
        )
        for index, slot in merged.items()
    ]
    return GenerateContentResponse(
        candidates=candidates, prompt_feedback=feedback, usage_metadata=usage
    )


# =============================================================================
# Orchestrator
# =============================================================================


class _CallBudget:
    def __init__(self, limit: int | None) -> None:
        self.limit = limit
        self.used = 0

    def consume(self) -> None:
        if self.limit is not None and self.used >= self.limit:
            raise TooManyFunctionCallsError(self.limit)
        self.used += 1


async def _aclose(iterator: Any) -> None:
    close = getattr(iterator, "aclose", None)
    if close is not None:
        await close()


class FunctionCallingOrchestrator:
    """Run a request to completion, executing the functions the model asks for.

    Args:
        adapter: Submits requests (single-shot and streaming).
        registry: Resolves and invokes functions by name.
        history_extractor: Request -> conversation contents.
        function_call_detector: Response -> the call to act on, or None.
        function_executor: ``(name, arguments_json) -> result_json``; defaults
            to ``registry.invoke``.
        retry_policy: Applied to each network exchange, never to a function.
        max_function_calls: Round-trips allowed per run; None disables the
            guard.
        on_state_change: Called with each state entered.
    """

    def __init__(
        self,
        adapter: ModelAdapter,
        registry: FunctionRegistry,
        *,
        history_extractor: Callable[[GeminiRequest], list[Content]] = extract_history,
        function_call_detector: Callable[
            [GenerateContentResponse], FunctionCall | None
        ] = detect_function_call,
        function_executor: Callable[[str, str], str] | None = None,
        retry_policy: RetryPolicy | None = None,
        max_function_calls: int | None = DEFAULT_MAX_FUNCTION_CALLS,
        on_state_change: Callable[[OrchestratorState], None] | None = None,
    ) -> None:
        self.adapter = adapter
        self.registry = registry
        self._extract_history = history_extractor
        self._detect = function_call_detector
        self._execute = function_executor or registry.invoke
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_function_calls = max_function_calls
        self._on_state_change = on_state_change

    def _enter(self, state: OrchestratorState) -> None:
        logger.debug("Orchestrator state -> %s", state.name)
        if self._on_state_change is not None:
            self._on_state_change(state)

    async def run(self, request: GeminiRequest) -> GenerateContentResponse:
        """Submit *request*, executing function calls until the model answers.

        Raises:
            TooManyFunctionCallsError: The round-trip limit was exceeded.
            FunctionExecutionError: A function failed.
            TransportError: An exchange failed after retries.
        """
        budget = _CallBudget(self.max_function_calls)
        while True:
            self._enter(OrchestratorState.AWAITING_MODEL_RESPONSE)
            response = await retry_async(
                functools.partial(self.adapter.submit, request),
                policy=self.retry_policy,
            )
            call = self._detect(response)
            if call is None:
                self._enter(OrchestratorState.DONE)
                return response
            request = self._follow_up(request, response, call, budget)

    async def stream(
        self, request: GeminiRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        """Stream *request*, yielding one complete response per window.

        A window carrying a function call is executed and the continuation
        stream's windows are yielded in its place. Closing the returned
        iterator closes the upstream stream without invoking a function on
        a partial window.
        """
        budget = _CallBudget(self.max_function_calls)
        async with aclosing(self._stream(request, budget)) as responses:
            async for response in responses:
                yield response
        self._enter(OrchestratorState.DONE)

    async def _stream(
        self, request: GeminiRequest, budget: _CallBudget
    ) -> AsyncIterator[GenerateContentResponse]:
        self._enter(OrchestratorState.AWAITING_MODEL_RESPONSE)
        upstream = self._open_stream(request)
        async with aclosing(upstream), aclosing(
            window_chunks(upstream, detector=self._detect)
        ) as windows:
            async for window in windows:
                response = merge_window(window)
                call = self._detect(response)
                if call is None:
                    yield response
                    continue
                follow_up = self._follow_up(request, response, call, budget)
                async with aclosing(self._stream(follow_up, budget)) as continuation:
                    async for item in continuation:
                        yield item

    async def _open_stream(
        self, request: GeminiRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        """Open the upstream stream, retrying until the first chunk arrives.

        Failures after the first chunk propagate: chunks already yielded
        cannot be taken back.
        """

        async def attempt() -> tuple[Any, GenerateContentResponse | None]:
            iterator = self.adapter.submit_streaming(request)
            try:
                first = await anext(iterator)
            except StopAsyncIteration:
                return iterator, None
            except BaseException:
                await _aclose(iterator)
                raise
            return iterator, first

        iterator, first = await retry_async(attempt, policy=self.retry_policy)
        try:
            if first is None:
                return
            yield first
            async for chunk in iterator:
                yield chunk
        finally:
            await _aclose(iterator)

    def _follow_up(
        self,
        request: GeminiRequest,
        response: GenerateContentResponse,
        call: FunctionCall,
        budget: _CallBudget,
    ) -> GeminiRequest:
        """Execute *call* and return the request carrying its result."""
        budget.consume()
        self._enter(OrchestratorState.EXECUTING_FUNCTION)
        logger.debug("Model requested function %s (round-trip %d)", call.name, budget.used)
        result_json = self._execute(call.name, args_to_json(call.args or {}))

        model_turn = response.candidates[0].content or Content(
            parts=[FunctionCallPart(function_call=call)]
        )
        if model_turn.role is None:
            model_turn = model_turn.model_copy(update={"role": Role.MODEL.value})
        function_turn = Content(
            role=Role.USER.value,
            parts=[
                FunctionResponsePart(
                    function_response=FunctionResponse(
                        name=call.name, response=json_to_struct(result_json)
                    )
                )
            ],
        )
        history = self._extract_history(request)
        history.extend([model_turn, function_turn])
        return request.with_contents(history)
