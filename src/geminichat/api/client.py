"""HTTP transport for the Gemini REST API, built on httpx."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from geminichat._http import API_KEY_HEADER, API_VERSION, DEFAULT_BASE_URL
from geminichat.api._errors import wrap_transport_error
from geminichat.api.types import GenerateContentRequest, GenerateContentResponse
from geminichat.errors import SerializationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

logger = logging.getLogger(__name__)


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the ``data`` payload of each server-sent event.

    Multi-line data fields are joined with newlines; comments and other fields
    are skipped. A trailing event without a blank line is still flushed.
    """
    buffer: list[str] = []
    async for line in lines:
        if not line.strip():
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name == "data":
            buffer.append(value[1:] if value.startswith(" ") else value)
    if buffer:
        yield "\n".join(buffer)


def _parse_response(payload: str | bytes) -> GenerateContentResponse:
    try:
        return GenerateContentResponse.model_validate_json(payload)
    except ValueError as e:
        raise SerializationError(
            f"Malformed generateContent response: {e}",
            hint="The API returned JSON that does not match the expected shape.",
        ) from e


class GeminiApi:
    """Low-level access to ``generateContent`` and ``streamGenerateContent``.

    Owns an ``httpx.AsyncClient`` unless one is injected; use as an async
    context manager or call ``aclose()`` when done.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {API_KEY_HEADER: api_key}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    def _url(self, model: str, method: str) -> str:
        model_id = model.removeprefix("models/")
        return f"{self._base_url}/{API_VERSION}/models/{quote(model_id, safe='')}:{method}"

    async def submit(
        self, model: str, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        """POST ``:generateContent`` and parse the response."""
        body: dict[str, Any] = request.to_wire()
        logger.debug("generateContent model=%s contents=%d", model, len(request.contents))
        try:
            response = await self._client.post(
                self._url(model, "generateContent"), json=body, headers=self._headers
            )
            response.raise_for_status()
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(
                e, phase="generate", message="Gemini generateContent failed"
            ) from e
        return _parse_response(response.content)

    async def submit_streaming(
        self, model: str, request: GenerateContentRequest
    ) -> AsyncIterator[GenerateContentResponse]:
        """POST ``:streamGenerateContent?alt=sse`` and yield chunks as they arrive."""
        body: dict[str, Any] = request.to_wire()
        logger.debug(
            "streamGenerateContent model=%s contents=%d", model, len(request.contents)
        )
        try:
            async with self._client.stream(
                "POST",
                self._url(model, "streamGenerateContent"),
                params={"alt": "sse"},
                json=body,
                headers=self._headers,
            ) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()
                async for payload in iter_sse_data(response.aiter_lines()):
                    yield _parse_response(payload)
        except httpx.HTTPError as e:
            raise wrap_transport_error(
                e, phase="stream", message="Gemini streamGenerateContent failed"
            ) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GeminiApi:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
