"""Transport protocol: the two operations the orchestrator needs from HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from geminichat.api.types import GenerateContentRequest, GenerateContentResponse


@runtime_checkable
class Transport(Protocol):
    """Minimal transport protocol: submit and submit_streaming."""

    async def submit(
        self, model: str, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        """Send one request and return the complete response."""
        ...

    def submit_streaming(
        self, model: str, request: GenerateContentRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        """Send one request and yield response chunks in delivery order."""
        ...
