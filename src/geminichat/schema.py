"""Schema conversion and JSON argument/result codecs.

``to_schema`` turns a Python type (pydantic model, dataclass, TypedDict,
Enum, Literal, builtins and their generic containers) into the ``Schema``
subset Gemini accepts for function parameters. ``json_schema_to_schema``
does the same for an existing JSON Schema document.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import dataclasses
import datetime
import decimal
from enum import Enum
import inspect
import json
import types
from typing import (
    Annotated,
    Any,
    Literal,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    is_typeddict,
)

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic.fields import FieldInfo
from pydantic_core import PydanticSerializationError

from geminichat.api.types import Schema, SchemaType
from geminichat.errors import SerializationError

_SCALARS: dict[type, tuple[SchemaType, str | None]] = {
    str: (SchemaType.STRING, None),
    int: (SchemaType.INTEGER, None),
    float: (SchemaType.NUMBER, None),
    decimal.Decimal: (SchemaType.NUMBER, None),
    bytes: (SchemaType.STRING, "byte"),
    datetime.datetime: (SchemaType.STRING, "date-time"),
    datetime.date: (SchemaType.STRING, "date"),
    datetime.time: (SchemaType.STRING, "time"),
}

_ARRAY_ORIGINS = (list, tuple, set, frozenset, Sequence)
_OBJECT_ORIGINS = (dict, Mapping)

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def _doc(tp: type) -> str | None:
    doc = tp.__dict__.get("__doc__")
    return inspect.cleandoc(doc) if isinstance(doc, str) and doc.strip() else None


def _string_enum(values: Sequence[Any], owner: Any, description: str | None) -> Schema:
    # Gemini enums are string-only; arguments come back as the advertised strings.
    if not all(isinstance(v, str) for v in values):
        raise SerializationError(
            f"Cannot express non-string enum values of {owner!r} as a Gemini schema",
            hint="Use string values, e.g. Literal['low', 'high'] or an Enum with str values.",
        )
    return Schema(
        type=SchemaType.STRING, format="enum", enum=list(values), description=description
    )


def _with(schema: Schema, **updates: Any) -> Schema:
    updates = {k: v for k, v in updates.items() if v is not None}
    return schema.model_copy(update=updates) if updates else schema


def to_schema(tp: Any, *, description: str | None = None) -> Schema:
    """Convert a Python type descriptor into a Gemini ``Schema``.

    Raises:
        SerializationError: For types Gemini cannot express (multi-type unions,
            ``Any``, recursive models).
    """
    return _convert(tp, description=description, seen=())


def _convert(tp: Any, *, description: str | None, seen: tuple[type, ...]) -> Schema:
    origin = get_origin(tp)

    if origin is Annotated:
        inner, *metadata = get_args(tp)
        for meta in metadata:
            if isinstance(meta, str):
                description = description or meta
            elif isinstance(meta, FieldInfo) and meta.description:
                description = description or meta.description
        return _convert(inner, description=description, seen=seen)

    if origin is Union or origin is types.UnionType:
        args = get_args(tp)
        members = [a for a in args if a is not type(None)]
        if len(members) != 1:
            raise SerializationError(
                f"Cannot express union {tp!r} as a Gemini schema",
                hint="Use a single type, optionally combined with None.",
            )
        inner = _convert(members[0], description=description, seen=seen)
        return _with(inner, nullable=True) if len(members) < len(args) else inner

    if origin is Literal:
        values = get_args(tp)
        if all(isinstance(v, bool) for v in values):
            return Schema(type=SchemaType.BOOLEAN, description=description)
        return _string_enum(values, tp, description)

    if origin in _ARRAY_ORIGINS:
        args = [a for a in get_args(tp) if a is not Ellipsis]
        items: Schema | None = None
        if args:
            if any(a != args[0] for a in args):
                raise SerializationError(
                    f"Cannot express heterogeneous tuple {tp!r} as a Gemini schema"
                )
            items = _convert(args[0], description=None, seen=seen)
        return Schema(type=SchemaType.ARRAY, items=items, description=description)

    if origin in _OBJECT_ORIGINS or tp in (dict, Mapping):
        return Schema(type=SchemaType.OBJECT, description=description)

    if tp in (list, tuple, set, frozenset):
        return Schema(type=SchemaType.ARRAY, description=description)

    if not isinstance(tp, type):
        raise SerializationError(f"Unsupported type descriptor: {tp!r}")

    # bool subclasses int: check it first.
    if tp is bool:
        return Schema(type=SchemaType.BOOLEAN, description=description)

    if issubclass(tp, Enum):
        return _string_enum([member.value for member in tp], tp, description or _doc(tp))

    for scalar, (schema_type, fmt) in _SCALARS.items():
        if issubclass(tp, scalar):
            return Schema(type=schema_type, format=fmt, description=description)

    if tp in seen:
        raise SerializationError(
            f"Recursive type {tp.__name__} cannot be expressed as a Gemini schema"
        )
    seen = (*seen, tp)

    if issubclass(tp, BaseModel):
        properties = {}
        required = []
        for name, info in tp.model_fields.items():
            key = info.alias or name
            annotation = info.rebuild_annotation()
            properties[key] = _convert(annotation, description=info.description, seen=seen)
            if info.is_required():
                required.append(key)
        return _object(properties, required, description or _doc(tp))

    if dataclasses.is_dataclass(tp):
        hints = get_type_hints(tp, include_extras=True)
        properties = {}
        required = []
        for f in dataclasses.fields(tp):
            properties[f.name] = _convert(
                hints[f.name], description=f.metadata.get("description"), seen=seen
            )
            if (
                f.default is dataclasses.MISSING
                and f.default_factory is dataclasses.MISSING
            ):
                required.append(f.name)
        return _object(properties, required, description or _doc(tp))

    if is_typeddict(tp):
        hints = get_type_hints(tp, include_extras=True)
        properties = {
            name: _convert(hint, description=None, seen=seen)
            for name, hint in hints.items()
        }
        required = [name for name in hints if name in tp.__required_keys__]
        return _object(properties, required, description or _doc(tp))

    raise SerializationError(
        f"Unsupported type {tp.__name__} for a Gemini schema",
        hint="Use builtins, Enum, Literal, dataclasses, TypedDict or pydantic models.",
    )


def _object(
    properties: dict[str, Schema], required: list[str], description: str | None
) -> Schema:
    return Schema(
        type=SchemaType.OBJECT,
        properties=properties,
        required=required or None,
        description=description,
    )


# =============================================================================
# JSON Schema documents
# =============================================================================

_JSON_TYPES: dict[str, SchemaType] = {
    "string": SchemaType.STRING,
    "number": SchemaType.NUMBER,
    "integer": SchemaType.INTEGER,
    "boolean": SchemaType.BOOLEAN,
    "array": SchemaType.ARRAY,
    "object": SchemaType.OBJECT,
}


def json_schema_to_schema(document: Mapping[str, Any] | str) -> Schema:
    """Convert a JSON Schema document into a Gemini ``Schema``.

    Local ``$ref``s into ``$defs``/``definitions`` are inlined; a nullable
    ``anyOf``/``type`` list becomes ``nullable``.
    """
    if isinstance(document, str):
        document = json_to_args(document)
    if not isinstance(document, Mapping):
        raise SerializationError("JSON schema document must be an object")
    defs = {**document.get("definitions", {}), **document.get("$defs", {})}
    return _from_json_schema(document, defs, refs=())


def _from_json_schema(
    node: Mapping[str, Any], defs: Mapping[str, Any], *, refs: tuple[str, ...]
) -> Schema:
    if "$ref" in node:
        ref = node["$ref"]
        name = ref.rsplit("/", 1)[-1]
        if ref in refs:
            raise SerializationError(f"Recursive $ref {ref!r} cannot be inlined")
        if name not in defs:
            raise SerializationError(f"Unresolvable $ref {ref!r}")
        resolved = _from_json_schema(defs[name], defs, refs=(*refs, ref))
        return _with(resolved, description=node.get("description"))

    nullable = None
    for key in ("anyOf", "oneOf", "allOf"):
        if key in node:
            members = [m for m in node[key] if m.get("type") != "null"]
            if len(members) != 1:
                raise SerializationError(
                    f"Cannot express {key} with {len(members)} alternatives"
                )
            inner = _from_json_schema(members[0], defs, refs=refs)
            if len(members) < len(node[key]):
                nullable = True
            return _with(inner, nullable=nullable, description=node.get("description"))

    raw_type = node.get("type")
    if isinstance(raw_type, list):
        non_null = [t for t in raw_type if t != "null"]
        nullable = True if len(non_null) < len(raw_type) else None
        raw_type = non_null[0] if len(non_null) == 1 else None
    if raw_type is None:
        if "properties" in node:
            raw_type = "object"
        elif "enum" in node:
            raw_type = "string"
    schema_type = _JSON_TYPES.get(raw_type) if isinstance(raw_type, str) else None
    if schema_type is None:
        raise SerializationError(f"Unsupported JSON schema type: {node.get('type')!r}")

    properties = None
    if "properties" in node:
        properties = {
            name: _from_json_schema(child, defs, refs=refs)
            for name, child in node["properties"].items()
        }
    items = None
    if isinstance(node.get("items"), Mapping):
        items = _from_json_schema(node["items"], defs, refs=refs)
    enum = None
    if "enum" in node:
        enum = _string_enum(node["enum"], node["enum"], None).enum

    return Schema(
        type=schema_type,
        format=node.get("format") or ("enum" if enum else None),
        description=node.get("description"),
        nullable=nullable,
        enum=enum,
        properties=properties,
        required=list(node["required"]) if node.get("required") else None,
        items=items,
    )


# =============================================================================
# Argument / result codecs
# =============================================================================


def args_to_json(value: Any) -> str:
    """Serialize function arguments or results to JSON text.

    Accepts plain JSON values as well as pydantic models, dataclasses and
    enums.
    """
    try:
        return _ANY_ADAPTER.dump_json(value).decode("utf-8")
    except PydanticSerializationError as e:
        raise SerializationError(f"Value is not JSON serializable: {e}") from e


def json_to_args(text: str | bytes, type_: Any = None) -> Any:
    """Parse JSON text, optionally validating it against *type_*."""
    if type_ is None:
        try:
            return json.loads(text)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Malformed JSON: {e}") from e
    try:
        return TypeAdapter(type_).validate_json(text)
    except ValidationError as e:
        raise SerializationError(
            f"JSON does not match {getattr(type_, '__name__', type_)!s}: {e}"
        ) from e


def json_to_struct(text: str | bytes) -> dict[str, Any]:
    """Parse JSON text into an object, wrapping non-objects as ``{"result": ...}``.

    Gemini function responses must be JSON objects.
    """
    value = json_to_args(text)
    if isinstance(value, dict):
        return value
    return {"result": value}
