"""Response normalization: provider responses -> neutral ChatResponse."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from geminichat.api.types import BlockReason, TextPart

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from geminichat.api.types import GenerateContentResponse, PromptFeedback


@dataclass(frozen=True)
class Generation:
    """One candidate's text."""

    text: str
    finish_reason: str | None = None
    index: int = 0


@dataclass(frozen=True)
class Usage:
    """Token counts as reported by the provider; unreported counts are None."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True)
class ChatResponse:
    """Ordered generations plus usage and metadata.

    An empty ``generations`` tuple is not an error: the prompt was most
    likely blocked. Check ``is_blocked`` and ``metadata["prompt_feedback"]``.
    ``usage`` is None when the provider sent no usage metadata.
    """

    generations: tuple[Generation, ...] = ()
    usage: Usage | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def result(self) -> Generation | None:
        """The first generation, if any."""
        return self.generations[0] if self.generations else None

    @property
    def text(self) -> str | None:
        return self.generations[0].text if self.generations else None

    @property
    def is_blocked(self) -> bool:
        feedback: PromptFeedback | None = self.metadata.get("prompt_feedback")
        if feedback is None or feedback.block_reason is None:
            return False
        return feedback.block_reason != BlockReason.BLOCK_REASON_UNSPECIFIED


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def to_chat_response(
    response: GenerateContentResponse, *, model: str | None = None
) -> ChatResponse:
    """Map each candidate to one Generation of its concatenated text parts."""
    generations = []
    for position, candidate in enumerate(response.candidates):
        parts = candidate.content.parts if candidate.content is not None else []
        generations.append(
            Generation(
                text="".join(p.text for p in parts if isinstance(p, TextPart)),
                finish_reason=_enum_value(candidate.finish_reason),
                index=candidate.index if candidate.index is not None else position,
            )
        )

    usage = None
    if response.usage_metadata is not None:
        u = response.usage_metadata
        usage = Usage(
            prompt_tokens=u.prompt_token_count,
            completion_tokens=u.candidates_token_count,
            total_tokens=u.total_token_count,
        )

    metadata: dict[str, Any] = {}
    if model is not None:
        metadata["model"] = model
    if response.prompt_feedback is not None:
        metadata["prompt_feedback"] = response.prompt_feedback
    return ChatResponse(tuple(generations), usage, metadata)


def aggregate(responses: Iterable[ChatResponse]) -> ChatResponse:
    """Fold streamed ChatResponse deltas into one response.

    Texts are concatenated per generation index; the last non-empty finish
    reason, usage and metadata values win.
    """
    texts: dict[int, list[str]] = {}
    finish: dict[int, str | None] = {}
    usage: Usage | None = None
    metadata: dict[str, Any] = {}
    for response in responses:
        for g in response.generations:
            texts.setdefault(g.index, []).append(g.text)
            if g.finish_reason is not None or g.index not in finish:
                finish[g.index] = g.finish_reason
        if response.usage is not None:
            usage = response.usage
        metadata.update(response.metadata)

    generations = tuple(
        Generation(text="".join(parts), finish_reason=finish[i], index=i)
        for i, parts in texts.items()
    )
    return ChatResponse(generations, usage, metadata)
