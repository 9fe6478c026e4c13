"""Chat options: sampling parameters, enabled functions and tool-use mode."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any

from geminichat.api.types import FunctionCallingMode, SafetySetting
from geminichat.errors import ConfigurationError

if TYPE_CHECKING:
    from geminichat.functions import FunctionCallback


@dataclass(frozen=True)
class ChatOptions:
    """Default or per-call options for a chat model.

    Every field is optional. When a call's options are merged over the
    model's defaults, set fields win and unset ones fall back, except
    ``functions`` which is the union of both.
    """

    #: Overrides the model's default model id for this call.
    model: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    candidate_count: int | None = None
    max_output_tokens: int | None = None
    stop_sequences: tuple[str, ...] | None = None

    #: Names of registered functions to advertise to the model.
    functions: frozenset[str] = frozenset()
    #: Callbacks that exist for the duration of a call only; enabled automatically.
    function_callbacks: tuple[FunctionCallback, ...] = ()
    function_calling_mode: FunctionCallingMode | None = None
    #: Restricts ``ANY`` mode to a subset of the advertised functions.
    allowed_function_names: tuple[str, ...] | None = None

    safety_settings: tuple[SafetySetting, ...] | None = None
    response_mime_type: str | None = None

    def __post_init__(self) -> None:
        """Normalize collections and validate ranges early for clear errors."""
        if isinstance(self.functions, str):
            raise ConfigurationError(
                "functions must be a collection of names, not a string",
                hint="Pass functions={'get_weather'}.",
            )
        object.__setattr__(self, "functions", frozenset(self.functions))
        object.__setattr__(self, "function_callbacks", tuple(self.function_callbacks))
        for name in self.functions:
            if not isinstance(name, str) or not name:
                raise ConfigurationError(
                    f"function names must be non-empty strings, got {name!r}"
                )

        for field_name, example in (
            ("stop_sequences", "stop_sequences=['END']"),
            ("allowed_function_names", "allowed_function_names=['get_weather']"),
        ):
            value = getattr(self, field_name)
            if value is None:
                continue
            if isinstance(value, str):
                raise ConfigurationError(
                    f"{field_name} must be a collection of strings, not a string",
                    hint=f"Pass {example}.",
                )
            object.__setattr__(self, field_name, tuple(value))
        if self.safety_settings is not None:
            object.__setattr__(self, "safety_settings", tuple(self.safety_settings))

        if isinstance(self.function_calling_mode, str) and not isinstance(
            self.function_calling_mode, FunctionCallingMode
        ):
            try:
                mode = FunctionCallingMode(self.function_calling_mode.upper())
            except ValueError as e:
                raise ConfigurationError(
                    f"Unknown function_calling_mode: {self.function_calling_mode!r}",
                    hint="Use one of AUTO, ANY, NONE.",
                ) from e
            object.__setattr__(self, "function_calling_mode", mode)

        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ConfigurationError(
                f"temperature must be in [0, 2], got {self.temperature}"
            )
        if self.top_p is not None and not 0.0 <= self.top_p <= 1.0:
            raise ConfigurationError(f"top_p must be in [0, 1], got {self.top_p}")
        for name in ("top_k", "candidate_count", "max_output_tokens"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or value <= 0):
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}"
                )

        if (
            self.allowed_function_names
            and self.function_calling_mode is not None
            and self.function_calling_mode is not FunctionCallingMode.ANY
        ):
            raise ConfigurationError(
                "allowed_function_names is only valid with function_calling_mode=ANY",
                hint="Set function_calling_mode='ANY' or drop allowed_function_names.",
            )

    def merged_with(self, defaults: ChatOptions | None) -> ChatOptions:
        """Return these options laid over *defaults*, field by field."""
        if defaults is None:
            return self
        values: dict[str, Any] = {}
        for f in fields(self):
            mine = getattr(self, f.name)
            theirs = getattr(defaults, f.name)
            if f.name == "functions":
                values[f.name] = mine | theirs
            elif f.name == "function_callbacks":
                names = {cb.name for cb in mine}
                values[f.name] = mine + tuple(cb for cb in theirs if cb.name not in names)
            else:
                values[f.name] = mine if mine is not None else theirs
        # Inherited allowed names only make sense under an inherited ANY mode.
        if values["function_calling_mode"] is not FunctionCallingMode.ANY:
            values["allowed_function_names"] = self.allowed_function_names
        return replace(self, **values)


def merge_options(
    runtime: ChatOptions | None, defaults: ChatOptions | None
) -> ChatOptions:
    """Merge per-call options over defaults; either side may be missing."""
    if runtime is None:
        return defaults if defaults is not None else ChatOptions()
    return runtime.merged_with(defaults)
