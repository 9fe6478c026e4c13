"""Function registry: named declarations plus the callables behind them."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from geminichat.errors import (
    DuplicateNameError,
    FunctionExecutionError,
    UnknownFunctionError,
)
from geminichat.functions import FunctionCallback, validate_function_name
from geminichat.schema import args_to_json

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from geminichat.api.types import FunctionDeclaration
    from geminichat.options import ChatOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionEntry:
    """A registered declaration and the callable that implements it."""

    declaration: FunctionDeclaration
    invoke: Callable[[str], Any]


class FunctionRegistry:
    """Named functions available to a chat model.

    A registry is an explicit object shared by reference; nothing is global.
    ``scoped()`` returns a child registry whose own entries shadow the
    parent's, for callbacks that should exist for one call only.
    """

    def __init__(self, *, parent: FunctionRegistry | None = None) -> None:
        self._entries: dict[str, FunctionEntry] = {}
        self._parent = parent

    def register(
        self,
        declaration: FunctionDeclaration,
        callback: FunctionCallback | Callable[[str], Any],
    ) -> None:
        """Register *callback* under ``declaration.name``.

        Raises:
            DuplicateNameError: The name is already registered here; the
                existing entry is kept.
        """
        name = validate_function_name(declaration.name)
        if name in self._entries:
            raise DuplicateNameError(
                name, hint="Function names must be unique within a registry."
            )
        invoke = callback.call if isinstance(callback, FunctionCallback) else callback
        self._entries[name] = FunctionEntry(declaration=declaration, invoke=invoke)
        logger.debug("Registered function %s", name)

    def add(self, callback: FunctionCallback) -> FunctionCallback:
        """Register a self-describing callback and return it."""
        self.register(callback.to_declaration(), callback)
        return callback

    def _all(self) -> dict[str, FunctionEntry]:
        if self._parent is None:
            return self._entries
        return {**self._parent._all(), **self._entries}

    def _lookup(self, name: str) -> FunctionEntry | None:
        entry = self._entries.get(name)
        if entry is None and self._parent is not None:
            return self._parent._lookup(name)
        return entry

    def get(self, name: str) -> FunctionDeclaration | None:
        entry = self._lookup(name)
        return entry.declaration if entry is not None else None

    def resolve(self, names: Iterable[str]) -> list[FunctionDeclaration]:
        """Return the declarations for *names* in registration order.

        Raises:
            UnknownFunctionError: Listing every name that is not registered.
        """
        wanted = set(names)
        entries = self._all()
        missing = wanted - entries.keys()
        if missing:
            raise UnknownFunctionError(missing)
        return [e.declaration for n, e in entries.items() if n in wanted]

    def invoke(self, name: str, arguments_json: str) -> str:
        """Call function *name* with JSON arguments and return its JSON result.

        Raises:
            UnknownFunctionError: *name* is not registered.
            FunctionExecutionError: The callback raised; the original
                exception is chained as ``__cause__``.
        """
        entry = self._lookup(name)
        if entry is None:
            raise UnknownFunctionError([name])
        logger.debug("Invoking function %s", name)
        try:
            result = entry.invoke(arguments_json)
        except Exception as e:
            raise FunctionExecutionError(name, e) from e
        return result if isinstance(result, str) else args_to_json(result)

    def enabled_functions(
        self,
        default_options: ChatOptions | None,
        runtime_options: ChatOptions | None,
    ) -> set[str]:
        """Names to advertise for one call.

        The union of functions enabled on the default and per-call options,
        plus every per-call callback.
        """
        enabled: set[str] = set()
        for options in (default_options, runtime_options):
            if options is None:
                continue
            enabled |= options.functions
            enabled.update(cb.name for cb in options.function_callbacks)
        return enabled

    def scoped(self, callbacks: Iterable[FunctionCallback]) -> FunctionRegistry:
        """Return a child registry holding *callbacks* over this one.

        The shared registry is never modified. With no callbacks, ``self``
        is returned.
        """
        callbacks = tuple(callbacks)
        if not callbacks:
            return self
        child = FunctionRegistry(parent=self)
        for cb in callbacks:
            child.add(cb)
        return child

    def names(self) -> list[str]:
        return list(self._all())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._lookup(name) is not None

    def __len__(self) -> int:
        return len(self._all())

    def __repr__(self) -> str:
        return f"FunctionRegistry(names={self.names()!r})"
