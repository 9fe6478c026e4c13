"""Request building: conversation messages + options -> wire request."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from geminichat.api.types import (
    Blob,
    BlobPart,
    Content,
    FunctionCallingConfig,
    GenerateContentRequest,
    GenerationConfig,
    Role,
    TextPart,
    Tool,
    ToolConfig,
)
from geminichat.errors import UnsupportedMediaError, UnsupportedMessageTypeError
from geminichat.messages import MessageType

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geminichat.messages import Media
    from geminichat.options import ChatOptions
    from geminichat.registry import FunctionRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeminiRequest:
    """A wire request bound to the model id it is sent to."""

    model: str
    request: GenerateContentRequest

    def with_contents(self, contents: list[Content]) -> GeminiRequest:
        """Same model, tools, tool config and generation config; new history."""
        return GeminiRequest(self.model, self.request.with_contents(contents))


def to_generation_config(options: ChatOptions) -> GenerationConfig | None:
    """Build a GenerationConfig from the sampling fields that are set."""
    values: dict[str, Any] = {
        "temperature": options.temperature,
        "top_p": options.top_p,
        "top_k": options.top_k,
        "candidate_count": options.candidate_count,
        "max_output_tokens": options.max_output_tokens,
        "stop_sequences": (
            list(options.stop_sequences) if options.stop_sequences is not None else None
        ),
        "response_mime_type": options.response_mime_type,
    }
    values = {k: v for k, v in values.items() if v is not None}
    return GenerationConfig(**values) if values else None


def _media_part(media: Media) -> BlobPart:
    if not isinstance(media.data, (bytes, bytearray)):
        raise UnsupportedMediaError(
            f"Unsupported media payload type: {type(media.data).__name__}",
            hint="Attach media as raw bytes; read files or streams before building the message.",
        )
    return BlobPart(inline_data=Blob.from_bytes(media.mime_type, media.data))


def _text(content: str | None) -> TextPart:
    return TextPart(text=content if content is not None else "null")


def to_contents(messages: Iterable[Any]) -> tuple[list[Content], Content | None]:
    """Split messages into turn contents and an optional system instruction.

    Raises:
        UnsupportedMessageTypeError: A message is not user, assistant or system.
        UnsupportedMediaError: Attached media is not raw bytes.
    """
    contents: list[Content] = []
    system_texts: list[str] = []
    for message in messages:
        kind = getattr(message, "message_type", None)
        if kind == MessageType.USER:
            parts: list[Any] = [_text(message.content)]
            parts.extend(_media_part(m) for m in message.media)
            contents.append(Content(role=Role.USER.value, parts=parts))
        elif kind == MessageType.ASSISTANT:
            contents.append(
                Content(role=Role.MODEL.value, parts=[_text(message.content)])
            )
        elif kind == MessageType.SYSTEM:
            if message.content is not None:
                system_texts.append(message.content)
        else:
            raise UnsupportedMessageTypeError(
                f"Unsupported message type: {kind or type(message).__name__}",
                hint="Use UserMessage, AssistantMessage or SystemMessage.",
            )

    instruction = "\n".join(system_texts)
    system = Content.from_text(instruction) if instruction else None
    return contents, system


def build_request(
    messages: Iterable[Any],
    options: ChatOptions,
    registry: FunctionRegistry,
    *,
    default_model: str,
    enabled_functions: Iterable[str] | None = None,
) -> GeminiRequest:
    """Assemble a GeminiRequest from messages and merged options.

    Args:
        messages: Ordered conversation messages.
        options: Options already merged over the model defaults.
        registry: Where enabled function names are resolved.
        default_model: Used when ``options.model`` is unset.
        enabled_functions: Names to advertise. Defaults to the options'
            functions plus their per-call callbacks.

    Raises:
        UnknownFunctionError: An enabled function is not registered.
    """
    contents, system = to_contents(messages)

    if enabled_functions is None:
        enabled_functions = set(options.functions) | {
            cb.name for cb in options.function_callbacks
        }
    enabled = set(enabled_functions)
    tools = [Tool(function_declarations=registry.resolve(enabled))] if enabled else None

    tool_config = None
    if options.function_calling_mode is not None:
        allowed = options.allowed_function_names
        tool_config = ToolConfig(
            function_calling_config=FunctionCallingConfig(
                mode=options.function_calling_mode,
                allowed_function_names=list(allowed) if allowed else None,
            )
        )

    model = options.model or default_model
    if isinstance(model, Enum):
        model = model.value

    request = GenerateContentRequest(
        contents=contents,
        tools=tools,
        tool_config=tool_config,
        safety_settings=(
            list(options.safety_settings) if options.safety_settings else None
        ),
        system_instruction=system,
        generation_config=to_generation_config(options),
    )
    logger.debug(
        "Built request model=%s contents=%d functions=%s",
        model,
        len(contents),
        sorted(enabled),
    )
    return GeminiRequest(model=model, request=request)
