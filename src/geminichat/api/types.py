"""Wire models for the Gemini ``generateContent`` REST contract.

Field names on the wire are camelCase; Python attributes are snake_case and
either spelling is accepted on input. ``None`` fields are dropped on output.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Annotated, Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator
from pydantic.alias_generators import to_camel

FUNCTION_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_.\-]*$"
FUNCTION_NAME_MAX_LENGTH = 64


class WireModel(BaseModel):
    """Base for all wire payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the JSON-ready camelCase dict the API expects."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Parts
# =============================================================================


class Blob(WireModel):
    """Inline binary payload, base64 encoded."""

    mime_type: str
    data: str

    @classmethod
    def from_bytes(cls, mime_type: str, data: bytes | bytearray) -> Blob:
        return cls(mime_type=mime_type, data=base64.b64encode(bytes(data)).decode("ascii"))

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


class FunctionCall(WireModel):
    """A function invocation requested by the model."""

    name: str
    args: dict[str, Any] | None = None


class FunctionResponse(WireModel):
    """The result of a function invocation, fed back to the model."""

    name: str
    response: dict[str, Any]


class FileData(WireModel):
    """Reference to a previously uploaded file."""

    mime_type: str
    file_uri: str


class TextPart(WireModel):
    kind: ClassVar[str] = "text"

    text: str


class BlobPart(WireModel):
    kind: ClassVar[str] = "inline_data"

    inline_data: Blob


class FunctionCallPart(WireModel):
    kind: ClassVar[str] = "function_call"

    function_call: FunctionCall


class FunctionResponsePart(WireModel):
    kind: ClassVar[str] = "function_response"

    function_response: FunctionResponse


class FileDataPart(WireModel):
    kind: ClassVar[str] = "file_data"

    file_data: FileData


# Wire key -> variant tag. Both spellings are accepted on input.
_PART_KEYS: tuple[tuple[str, str], ...] = (
    ("text", "text"),
    ("inlineData", "inline_data"),
    ("inline_data", "inline_data"),
    ("functionCall", "function_call"),
    ("function_call", "function_call"),
    ("functionResponse", "function_response"),
    ("function_response", "function_response"),
    ("fileData", "file_data"),
    ("file_data", "file_data"),
)


def _part_kind(value: Any) -> str | None:
    # A Part holds exactly one field; anything else fails the union.
    if isinstance(value, dict):
        tags = {tag for key, tag in _PART_KEYS if value.get(key) is not None}
        return tags.pop() if len(tags) == 1 else None
    return getattr(value, "kind", None)


Part = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[BlobPart, Tag("inline_data")],
        Annotated[FunctionCallPart, Tag("function_call")],
        Annotated[FunctionResponsePart, Tag("function_response")],
        Annotated[FileDataPart, Tag("file_data")],
    ],
    Discriminator(_part_kind),
]


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class Content(WireModel):
    """One conversational turn: an optional role and ordered parts."""

    role: str | None = None
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, *, role: str | None = None) -> Content:
        return cls(role=role, parts=[TextPart(text=text)])


# =============================================================================
# Tools
# =============================================================================


class SchemaType(str, Enum):
    TYPE_UNSPECIFIED = "TYPE_UNSPECIFIED"
    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"


class Schema(WireModel):
    """The OpenAPI subset Gemini accepts for function parameters."""

    type: SchemaType
    format: str | None = None
    description: str | None = None
    nullable: bool | None = None
    enum: list[str] | None = Field(default=None, alias="enum")
    properties: dict[str, Schema] | None = None
    required: list[str] | None = None
    items: Schema | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _type_case_insensitive(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value


class FunctionDeclaration(WireModel):
    """A named, schema-described function the model may call."""

    name: str = Field(
        min_length=1, max_length=FUNCTION_NAME_MAX_LENGTH, pattern=FUNCTION_NAME_PATTERN
    )
    description: str = ""
    parameters: Schema | None = None


class Tool(WireModel):
    function_declarations: list[FunctionDeclaration]


class FunctionCallingMode(str, Enum):
    MODE_UNSPECIFIED = "MODE_UNSPECIFIED"
    AUTO = "AUTO"
    ANY = "ANY"
    NONE = "NONE"


class FunctionCallingConfig(WireModel):
    mode: FunctionCallingMode
    #: Only honoured by the API when ``mode`` is ``ANY``.
    allowed_function_names: list[str] | None = None


class ToolConfig(WireModel):
    function_calling_config: FunctionCallingConfig


# =============================================================================
# Safety and generation config
# =============================================================================


class HarmCategory(str, Enum):
    HARM_CATEGORY_UNSPECIFIED = "HARM_CATEGORY_UNSPECIFIED"
    HARM_CATEGORY_DEROGATORY = "HARM_CATEGORY_DEROGATORY"
    HARM_CATEGORY_TOXICITY = "HARM_CATEGORY_TOXICITY"
    HARM_CATEGORY_VIOLENCE = "HARM_CATEGORY_VIOLENCE"
    HARM_CATEGORY_SEXUAL = "HARM_CATEGORY_SEXUAL"
    HARM_CATEGORY_MEDICAL = "HARM_CATEGORY_MEDICAL"
    HARM_CATEGORY_DANGEROUS = "HARM_CATEGORY_DANGEROUS"
    HARM_CATEGORY_HARASSMENT = "HARM_CATEGORY_HARASSMENT"
    HARM_CATEGORY_HATE_SPEECH = "HARM_CATEGORY_HATE_SPEECH"
    HARM_CATEGORY_SEXUALLY_EXPLICIT = "HARM_CATEGORY_SEXUALLY_EXPLICIT"
    HARM_CATEGORY_DANGEROUS_CONTENT = "HARM_CATEGORY_DANGEROUS_CONTENT"


class HarmBlockThreshold(str, Enum):
    HARM_BLOCK_THRESHOLD_UNSPECIFIED = "HARM_BLOCK_THRESHOLD_UNSPECIFIED"
    BLOCK_LOW_AND_ABOVE = "BLOCK_LOW_AND_ABOVE"
    BLOCK_MEDIUM_AND_ABOVE = "BLOCK_MEDIUM_AND_ABOVE"
    BLOCK_ONLY_HIGH = "BLOCK_ONLY_HIGH"
    BLOCK_NONE = "BLOCK_NONE"


class SafetySetting(WireModel):
    category: HarmCategory
    threshold: HarmBlockThreshold


class GenerationConfig(WireModel):
    stop_sequences: list[str] | None = None
    response_mime_type: str | None = None
    response_schema: Schema | None = None
    candidate_count: int | None = None
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None


class GenerateContentRequest(WireModel):
    """Body of ``models/{model}:generateContent``."""

    contents: list[Content]
    tools: list[Tool] | None = None
    tool_config: ToolConfig | None = None
    safety_settings: list[SafetySetting] | None = None
    system_instruction: Content | None = None
    generation_config: GenerationConfig | None = None

    def with_contents(self, contents: list[Content]) -> GenerateContentRequest:
        """Return a copy with *contents* replaced and everything else kept."""
        return self.model_copy(update={"contents": list(contents)})


# =============================================================================
# Responses
# =============================================================================

# Response enums are parsed leniently (``Enum | str``): the API adds values
# over time and an unknown one must not break parsing.


class FinishReason(str, Enum):
    FINISH_REASON_UNSPECIFIED = "FINISH_REASON_UNSPECIFIED"
    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    SAFETY = "SAFETY"
    RECITATION = "RECITATION"
    OTHER = "OTHER"


class BlockReason(str, Enum):
    BLOCK_REASON_UNSPECIFIED = "BLOCK_REASON_UNSPECIFIED"
    SAFETY = "SAFETY"
    OTHER = "OTHER"


class HarmProbability(str, Enum):
    HARM_PROBABILITY_UNSPECIFIED = "HARM_PROBABILITY_UNSPECIFIED"
    NEGLIGIBLE = "NEGLIGIBLE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SafetyRating(WireModel):
    category: HarmCategory | str | None = None
    probability: HarmProbability | str | None = None
    blocked: bool | None = None


class CitationSource(WireModel):
    start_index: int | None = None
    end_index: int | None = None
    uri: str | None = None
    license: str | None = None


class CitationMetadata(WireModel):
    citation_sources: list[CitationSource] = Field(default_factory=list)


class Candidate(WireModel):
    content: Content | None = None
    finish_reason: FinishReason | str | None = None
    safety_ratings: list[SafetyRating] | None = None
    citation_metadata: CitationMetadata | None = None
    token_count: int | None = None
    index: int | None = None


class PromptFeedback(WireModel):
    block_reason: BlockReason | str | None = None
    safety_ratings: list[SafetyRating] | None = None


class UsageMetadata(WireModel):
    prompt_token_count: int | None = None
    candidates_token_count: int | None = None
    total_token_count: int | None = None


class GenerateContentResponse(WireModel):
    """A complete response, or one streamed chunk of one."""

    candidates: list[Candidate] = Field(default_factory=list)
    prompt_feedback: PromptFeedback | None = None
    usage_metadata: UsageMetadata | None = None

    def first_part(self) -> Part | None:
        """Return the first candidate's first part, if there is one."""
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0]

    def first_finish_reason(self) -> FinishReason | str | None:
        if not self.candidates:
            return None
        return self.candidates[0].finish_reason
