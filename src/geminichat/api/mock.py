"""Mock transport for offline use and tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from geminichat.api.types import (
    Candidate,
    Content,
    FinishReason,
    GenerateContentRequest,
    GenerateContentResponse,
    Role,
    TextPart,
    UsageMetadata,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


def _last_user_text(request: GenerateContentRequest) -> str:
    for content in reversed(request.contents):
        if content.role not in (None, Role.USER.value):
            continue
        for part in content.parts:
            if isinstance(part, TextPart) and part.text.strip():
                return part.text
    return ""


class MockTransport:
    """Transport that never touches the network.

    Echoes the last user text back (truncated to 100 characters). Streaming
    splits the echo into one chunk per word, the last one carrying ``STOP``.
    """

    def __init__(self) -> None:
        self.requests: list[tuple[str, GenerateContentRequest]] = []

    async def submit(
        self, model: str, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        self.requests.append((model, request))
        text = f"echo: {_last_user_text(request)[:100]}"
        return GenerateContentResponse(
            candidates=[
                Candidate(
                    content=Content.from_text(text, role=Role.MODEL.value),
                    finish_reason=FinishReason.STOP,
                    index=0,
                )
            ],
            usage_metadata=UsageMetadata(
                prompt_token_count=10, candidates_token_count=10, total_token_count=20
            ),
        )

    async def submit_streaming(
        self, model: str, request: GenerateContentRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        response = await self.submit(model, request)
        words = response.candidates[0].content.parts[0].text.split(" ")  # type: ignore[union-attr]
        for i, word in enumerate(words):
            last = i == len(words) - 1
            yield GenerateContentResponse(
                candidates=[
                    Candidate(
                        content=Content.from_text(
                            word if i == 0 else f" {word}", role=Role.MODEL.value
                        ),
                        finish_reason=FinishReason.STOP if last else None,
                        index=0,
                    )
                ],
                usage_metadata=response.usage_metadata if last else None,
            )
