"""GeminiChatModel: the caller-facing chat model."""

from __future__ import annotations

from contextlib import aclosing
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from geminichat._http import DEFAULT_BASE_URL
from geminichat.api.client import GeminiApi
from geminichat.api.mock import MockTransport
from geminichat.api.types import FunctionDeclaration
from geminichat.config import API_KEY_ENV_VAR, DEFAULT_MAX_FUNCTION_CALLS
from geminichat.errors import ConfigurationError, DuplicateNameError
from geminichat.functions import (
    FunctionCallback,
    FunctionCallbackWrapper,
    validate_function_name,
)
from geminichat.messages import Prompt
from geminichat.options import ChatOptions, merge_options
from geminichat.orchestrator import FunctionCallingOrchestrator, TransportAdapter
from geminichat.registry import FunctionRegistry
from geminichat.request import build_request
from geminichat.result import to_chat_response
from geminichat.retry import RetryPolicy
from geminichat.schema import json_schema_to_schema

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping
    from types import TracebackType

    from geminichat.api.base import Transport
    from geminichat.config import Config
    from geminichat.request import GeminiRequest
    from geminichat.result import ChatResponse

logger = logging.getLogger(__name__)


class ChatModelName(str, Enum):
    GEMINI_1_5_FLASH_LATEST = "gemini-1.5-flash-latest"
    GEMINI_1_5_PRO_LATEST = "gemini-1.5-pro-latest"

    def __str__(self) -> str:
        return self.value


DEFAULT_MODEL = ChatModelName.GEMINI_1_5_FLASH_LATEST
DEFAULT_TEMPERATURE = 0.7


class GeminiChatModel:
    """Chat model over the Gemini API with function calling.

    Example:
        async with GeminiChatModel.from_config(Config()) as model:
            model.register_function(get_weather)
            response = await model.call(
                Prompt("Weather in Paris?", ChatOptions(functions={"get_weather"}))
            )
            print(response.text)
    """

    def __init__(
        self,
        api: Transport,
        default_options: ChatOptions | None = None,
        registry: FunctionRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        max_function_calls: int | None = DEFAULT_MAX_FUNCTION_CALLS,
    ) -> None:
        self.api = api
        self.default_options = default_options or ChatOptions(
            model=DEFAULT_MODEL.value, temperature=DEFAULT_TEMPERATURE
        )
        self.registry = registry if registry is not None else FunctionRegistry()
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_function_calls = max_function_calls
        # Default callbacks belong to this model; a shared registry stays untouched.
        self._functions = self.registry.scoped(self.default_options.function_callbacks)

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> GeminiChatModel:
        """Build a model from ``Config``; ``use_mock`` selects ``MockTransport``."""
        api: Transport
        if config.use_mock:
            api = MockTransport()
        elif not config.api_key:
            raise ConfigurationError(
                "Config has no api_key for the Gemini API",
                hint=f"Set {API_KEY_ENV_VAR} or pass Config(api_key=...) or Config(use_mock=True).",
            )
        else:
            api = GeminiApi(
                config.api_key,
                base_url=config.base_url or DEFAULT_BASE_URL,
                timeout_s=config.timeout_s,
            )
        kwargs.setdefault(
            "default_options",
            ChatOptions(model=config.model, temperature=DEFAULT_TEMPERATURE),
        )
        kwargs.setdefault("retry_policy", config.retry)
        kwargs.setdefault("max_function_calls", config.max_function_calls)
        return cls(api, **kwargs)

    def register_function(
        self,
        fn: Callable[..., Any] | FunctionCallback,
        *,
        name: str | None = None,
        description: str | None = None,
        input_type: type | None = None,
        input_schema: Mapping[str, Any] | str | None = None,
        declaration: FunctionDeclaration | None = None,
    ) -> FunctionCallback | Callable[..., Any]:
        """Register a function the model may call once it is enabled by name.

        With ``declaration``, or with ``name`` plus a JSON Schema
        ``input_schema``, *fn* is registered as-is and must take and return
        JSON text. Otherwise plain callables are wrapped in a
        ``FunctionCallbackWrapper``.

        Raises:
            DuplicateNameError: The name is already registered, including
                as one of this model's default callbacks.
        """
        if input_schema is not None:
            if declaration is not None or name is None:
                raise ConfigurationError(
                    "input_schema needs a name and cannot be combined with declaration",
                    hint="Pass register_function(fn, name='lookup', input_schema={...}).",
                )
            declaration = FunctionDeclaration(
                name=validate_function_name(name),
                description=description or "",
                parameters=json_schema_to_schema(input_schema),
            )
        if declaration is not None:
            self._check_free(declaration.name)
            self.registry.register(declaration, fn)
            return fn
        callback = (
            fn
            if isinstance(fn, FunctionCallback)
            else FunctionCallbackWrapper(
                fn, name=name, description=description, input_type=input_type
            )
        )
        self._check_free(callback.name)
        return self.registry.add(callback)

    def _check_free(self, name: str) -> None:
        if name in self._functions:
            raise DuplicateNameError(
                name, hint="Function names must be unique within a registry."
            )

    def _prepare(
        self, prompt: Prompt | str
    ) -> tuple[FunctionCallingOrchestrator, GeminiRequest]:
        if not isinstance(prompt, Prompt):
            prompt = Prompt(prompt)
        runtime = prompt.options
        options = merge_options(runtime, self.default_options)
        registry = self._functions.scoped(runtime.function_callbacks if runtime else ())
        request = build_request(
            prompt.messages,
            options,
            registry,
            default_model=self.default_options.model or DEFAULT_MODEL.value,
            enabled_functions=registry.enabled_functions(self.default_options, runtime),
        )
        orchestrator = FunctionCallingOrchestrator(
            TransportAdapter(self.api),
            registry,
            retry_policy=self.retry_policy,
            max_function_calls=self.max_function_calls,
        )
        return orchestrator, request

    async def call(self, prompt: Prompt | str) -> ChatResponse:
        """Run *prompt* to a final answer, executing requested functions."""
        orchestrator, request = self._prepare(prompt)
        response = await orchestrator.run(request)
        return to_chat_response(response, model=request.model)

    async def stream(self, prompt: Prompt | str) -> AsyncIterator[ChatResponse]:
        """Stream *prompt*, yielding one ChatResponse per logical response.

        Use ``result.aggregate`` to fold the deltas into one response.
        """
        orchestrator, request = self._prepare(prompt)
        async with aclosing(orchestrator.stream(request)) as responses:
            async for response in responses:
                yield to_chat_response(response, model=request.model)

    async def aclose(self) -> None:
        close = getattr(self.api, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> GeminiChatModel:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
