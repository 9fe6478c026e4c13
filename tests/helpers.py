"""Test helpers (small, reusable doubles and response builders).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off transport subclasses as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from geminichat.api.types import (
    Candidate,
    Content,
    FunctionCall,
    FunctionCallPart,
    GenerateContentRequest,
    GenerateContentResponse,
    TextPart,
    UsageMetadata,
)
from geminichat.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

#: Retries without sleeping.
FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay_s=0.0, jitter=False)

#: Stream script marker: block until ``ScriptedTransport.gate`` is set.
WAIT = "wait"


def usage(prompt: int = 3, completion: int = 2) -> UsageMetadata:
    return UsageMetadata(
        prompt_token_count=prompt,
        candidates_token_count=completion,
        total_token_count=prompt + completion,
    )


def text_response(
    text: str,
    *,
    finish_reason: str | None = "STOP",
    usage_metadata: UsageMetadata | None = None,
) -> GenerateContentResponse:
    return GenerateContentResponse(
        candidates=[
            Candidate(
                content=Content(role="model", parts=[TextPart(text=text)]),
                finish_reason=finish_reason,
                index=0,
            )
        ],
        usage_metadata=usage_metadata,
    )


def call_response(
    name: str,
    args: dict[str, Any] | None = None,
    *,
    finish_reason: str | None = "STOP",
) -> GenerateContentResponse:
    return GenerateContentResponse(
        candidates=[
            Candidate(
                content=Content(
                    role="model",
                    parts=[FunctionCallPart(function_call=FunctionCall(name=name, args=args))],
                ),
                finish_reason=finish_reason,
                index=0,
            )
        ]
    )


@dataclass
class ScriptedTransport:
    """Transport that replays a scripted sequence of responses/exceptions.

    ``script`` feeds ``submit``; each entry of ``streams`` feeds one
    ``submit_streaming`` call and is either an exception (raised on the
    first pull) or a list of chunks, exceptions and ``WAIT`` markers.
    """

    script: list[GenerateContentResponse | BaseException] = field(default_factory=list)
    streams: list[list[Any] | BaseException] = field(default_factory=list)
    requests: list[tuple[str, GenerateContentRequest]] = field(default_factory=list)
    streams_opened: int = 0
    streams_closed: int = 0
    gate: asyncio.Event = field(default_factory=asyncio.Event)
    waiting: asyncio.Event = field(default_factory=asyncio.Event)

    async def submit(
        self, model: str, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        self.requests.append((model, request))
        if not self.script:
            return text_response("ok")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def submit_streaming(
        self, model: str, request: GenerateContentRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        self.requests.append((model, request))
        self.streams_opened += 1
        item = self.streams.pop(0) if self.streams else [text_response("ok")]
        try:
            if isinstance(item, BaseException):
                raise item
            for chunk in item:
                if isinstance(chunk, BaseException):
                    raise chunk
                if chunk == WAIT:
                    self.waiting.set()
                    await self.gate.wait()
                    continue
                yield chunk
        finally:
            self.streams_closed += 1


@dataclass
class Recorder:
    """Callable ``str -> str`` that records its JSON arguments."""

    result: str = '{"ok": true}'
    calls: list[str] = field(default_factory=list)

    def __call__(self, arguments_json: str) -> str:
        self.calls.append(arguments_json)
        return self.result
