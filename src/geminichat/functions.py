"""Function callbacks: named Python callables the model may invoke."""

from __future__ import annotations

from abc import ABC, abstractmethod
import dataclasses
import inspect
import re
from typing import TYPE_CHECKING, Any, get_type_hints

from pydantic import BaseModel, create_model

from geminichat.api.types import (
    FUNCTION_NAME_MAX_LENGTH,
    FUNCTION_NAME_PATTERN,
    FunctionDeclaration,
    Schema,
)
from geminichat.errors import ConfigurationError
from geminichat.schema import args_to_json, json_to_args, to_schema

if TYPE_CHECKING:
    from collections.abc import Callable

_NAME_RE = re.compile(FUNCTION_NAME_PATTERN)


def validate_function_name(name: str) -> str:
    """Return *name* unchanged if Gemini accepts it as a function name."""
    if (
        not isinstance(name, str)
        or not 1 <= len(name) <= FUNCTION_NAME_MAX_LENGTH
        or not _NAME_RE.fullmatch(name)
    ):
        raise ConfigurationError(
            f"Invalid function name: {name!r}",
            hint=(
                "Names start with a letter or underscore, contain only letters, "
                f"digits, '_', '.', '-' and are at most {FUNCTION_NAME_MAX_LENGTH} "
                "characters."
            ),
        )
    return name


class FunctionCallback(ABC):
    """A named function that takes and returns JSON text.

    Subclasses set ``name`` and ``description`` and implement ``call``.
    Identity is the name: a registry holds at most one callback per name.
    """

    name: str
    description: str = ""

    @property
    def input_schema(self) -> Schema | None:
        """Schema of the argument object, or None for a function without arguments."""
        return None

    @abstractmethod
    def call(self, arguments_json: str) -> str:
        """Invoke the function with JSON arguments and return a JSON result."""

    def to_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name, description=self.description, parameters=self.input_schema
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _is_structured(tp: Any) -> bool:
    return inspect.isclass(tp) and (
        issubclass(tp, BaseModel) or dataclasses.is_dataclass(tp)
    )


def _infer_input_type(fn: Callable[..., Any], name: str) -> tuple[type | None, bool]:
    """Return ``(input_type, unpack)`` for *fn*.

    A single pydantic-model or dataclass parameter is used as-is. Otherwise a
    model is built from the signature and its fields are passed as keywords.
    """
    sig = inspect.signature(fn)
    hints = get_type_hints(fn, include_extras=True)
    params = [
        p
        for p in sig.parameters.values()
        if p.name not in {"self", "cls"}
        and p.kind not in {inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD}
    ]
    if not params:
        return None, True
    if len(params) == 1 and _is_structured(hints.get(params[0].name)):
        return hints[params[0].name], False

    fields: dict[str, Any] = {
        p.name: (
            hints.get(p.name, str),
            p.default if p.default is not inspect.Parameter.empty else ...,
        )
        for p in params
    }
    return create_model(f"{name}_input", **fields), True


class FunctionCallbackWrapper(FunctionCallback):
    """Adapt a plain Python callable into a ``FunctionCallback``.

    The input schema is derived from the callable's signature unless
    ``input_type`` is given. Arguments are validated against that type before
    the call; the return value is serialized to JSON.

    Example:
        def get_weather(location: str, unit: Literal["C", "F"] = "C") -> dict:
            '''Current weather for a city.'''
            ...

        callback = FunctionCallbackWrapper(get_weather)
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        input_type: type | None = None,
    ) -> None:
        if inspect.iscoroutinefunction(fn):
            raise ConfigurationError(
                f"Function {getattr(fn, '__name__', fn)!r} is a coroutine function",
                hint="Callbacks run synchronously inside the call loop; pass a regular function.",
            )
        self.fn = fn
        self.name = validate_function_name(name or getattr(fn, "__name__", ""))
        self.description = (
            description if description is not None else inspect.getdoc(fn) or ""
        )
        if input_type is None:
            self.input_type, self._unpack = _infer_input_type(fn, self.name)
        else:
            self.input_type, self._unpack = input_type, False
        self._schema = to_schema(self.input_type) if self.input_type is not None else None

    @property
    def input_schema(self) -> Schema | None:
        return self._schema

    def call(self, arguments_json: str) -> str:
        if self.input_type is None:
            return args_to_json(self.fn())
        args = json_to_args(arguments_json or "{}", self.input_type)
        if self._unpack:
            kwargs = {f: getattr(args, f) for f in type(args).model_fields}
            return args_to_json(self.fn(**kwargs))
        return args_to_json(self.fn(args))


def function_callback(
    fn: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    input_type: type | None = None,
) -> Any:
    """Decorator form of ``FunctionCallbackWrapper``.

    Usable bare (``@function_callback``) or with arguments.
    """

    def wrap(f: Callable[..., Any]) -> FunctionCallbackWrapper:
        return FunctionCallbackWrapper(
            f, name=name, description=description, input_type=input_type
        )

    if fn is not None:
        return wrap(fn)
    return wrap
