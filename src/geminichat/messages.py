"""Caller-facing conversation messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geminichat.options import ChatOptions


class MessageType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Media:
    """Binary payload attached to a user message.

    ``data`` should be raw bytes; anything else is rejected when the request
    is built.
    """

    mime_type: str
    data: Any


@dataclass(frozen=True)
class UserMessage:
    content: str | None
    media: tuple[Media, ...] = ()

    message_type = MessageType.USER

    def __post_init__(self) -> None:
        object.__setattr__(self, "media", tuple(self.media))


@dataclass(frozen=True)
class AssistantMessage:
    content: str | None

    message_type = MessageType.ASSISTANT


@dataclass(frozen=True)
class SystemMessage:
    content: str | None

    message_type = MessageType.SYSTEM


Message = Union[UserMessage, AssistantMessage, SystemMessage]


@dataclass(frozen=True, init=False)
class Prompt:
    """An ordered conversation plus optional per-call options.

    Accepts a bare string (one user message), a single message, or an
    iterable of messages.
    """

    messages: tuple[Any, ...]
    options: ChatOptions | None = None

    def __init__(
        self,
        messages: str | Any | Iterable[Any],
        options: ChatOptions | None = None,
    ) -> None:
        if isinstance(messages, str):
            normalized: tuple[Any, ...] = (UserMessage(messages),)
        elif hasattr(messages, "message_type"):
            normalized = (messages,)
        else:
            normalized = tuple(messages)
        object.__setattr__(self, "messages", normalized)
        object.__setattr__(self, "options", options)


@dataclass(frozen=True)
class Conversation:
    """Append-only helper for multi-turn chats.

    Each method returns a new Conversation; the original is left unchanged.
    """

    messages: tuple[Any, ...] = field(default_factory=tuple)

    def user(self, content: str, *media: Media) -> Conversation:
        return Conversation((*self.messages, UserMessage(content, media)))

    def assistant(self, content: str) -> Conversation:
        return Conversation((*self.messages, AssistantMessage(content)))

    def system(self, content: str) -> Conversation:
        return Conversation((*self.messages, SystemMessage(content)))

    def prompt(self, options: ChatOptions | None = None) -> Prompt:
        return Prompt(self.messages, options)
