"""geminichat: Gemini chat model with function calling.

Public API:
    - GeminiChatModel: call() / stream() over the Gemini API
    - Prompt, UserMessage, AssistantMessage, SystemMessage: conversation input
    - ChatOptions: per-call and default options
    - FunctionRegistry, FunctionCallbackWrapper: functions the model may call
    - Config: configuration dataclass
"""

from __future__ import annotations

import logging

from geminichat.api import GeminiApi, MockTransport, Transport
from geminichat.chat_model import ChatModelName, GeminiChatModel
from geminichat.config import Config
from geminichat.errors import (
    ConfigurationError,
    DuplicateNameError,
    FunctionExecutionError,
    GeminiChatError,
    RateLimitError,
    SerializationError,
    TooManyFunctionCallsError,
    TransportError,
    UnknownFunctionError,
    UnsupportedMediaError,
    UnsupportedMessageTypeError,
)
from geminichat.functions import (
    FunctionCallback,
    FunctionCallbackWrapper,
    function_callback,
)
from geminichat.messages import (
    AssistantMessage,
    Conversation,
    Media,
    Prompt,
    SystemMessage,
    UserMessage,
)
from geminichat.options import ChatOptions
from geminichat.orchestrator import FunctionCallingOrchestrator, OrchestratorState
from geminichat.registry import FunctionRegistry
from geminichat.result import ChatResponse, Generation, Usage, aggregate
from geminichat.retry import RetryPolicy

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("geminichat")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("geminichat").addHandler(logging.NullHandler())

__all__ = [
    "AssistantMessage",
    "ChatModelName",
    "ChatOptions",
    "ChatResponse",
    "Config",
    "ConfigurationError",
    "Conversation",
    "DuplicateNameError",
    "FunctionCallback",
    "FunctionCallbackWrapper",
    "FunctionCallingOrchestrator",
    "FunctionExecutionError",
    "FunctionRegistry",
    "GeminiApi",
    "GeminiChatError",
    "GeminiChatModel",
    "Generation",
    "Media",
    "MockTransport",
    "OrchestratorState",
    "Prompt",
    "RateLimitError",
    "RetryPolicy",
    "SerializationError",
    "SystemMessage",
    "TooManyFunctionCallsError",
    "Transport",
    "TransportError",
    "UnknownFunctionError",
    "UnsupportedMediaError",
    "UnsupportedMessageTypeError",
    "Usage",
    "UserMessage",
    "aggregate",
    "function_callback",
]
