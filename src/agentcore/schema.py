"""
JSON-schema generation and validation for tool parameters and structured results.

Only the subset the runtime understands is produced: ``type``, ``properties``,
``required``, ``items``, ``enum``, ``description`` and ``additionalProperties``.
Validation also honours ``minLength``, ``maxLength`` and ``pattern`` when a
caller supplies them in an explicit schema.
"""

from __future__ import annotations

import dataclasses
import datetime as _dt
import decimal
import enum
import functools
import json
import re
import threading
import types
import uuid
from collections.abc import Iterable, Mapping, Sequence, Set
from typing import (
    Annotated,
    Any,
    Callable,
    Hashable,
    Literal,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import BaseModel, TypeAdapter
from pydantic.fields import FieldInfo

from agentcore._exceptions import SchemaViolation

__all__ = [
    "SchemaCache",
    "canonical_json",
    "coerce_enum_names",
    "describe_annotation",
    "is_nullable",
    "is_simple_type",
    "schema_for_type",
    "strip_annotated",
    "type_adapter",
    "unwrap_optional",
    "validate_against_schema",
]

JsonSchema = dict[str, Any]

_PRIMITIVES: dict[type, str] = {
    bool: "boolean",
    int: "integer",
    float: "number",
    decimal.Decimal: "number",
    str: "string",
    bytes: "string",
    uuid.UUID: "string",
    _dt.datetime: "string",
    _dt.date: "string",
    _dt.time: "string",
}

_ARRAY_ORIGINS = (list, tuple, set, frozenset, Sequence, Iterable, Set)
_MAPPING_ORIGINS = (dict, Mapping)


# ---------------------------------------------------------------------------
# annotation helpers
# ---------------------------------------------------------------------------
def strip_annotated(tp: Any) -> tuple[Any, tuple[Any, ...]]:
    """Return ``(base_type, metadata)`` for ``Annotated[...]`` or ``(tp, ())``."""
    if get_origin(tp) is Annotated:
        base, *meta = get_args(tp)
        return base, tuple(meta)
    return tp, ()


def describe_annotation(metadata: Iterable[Any]) -> str | None:
    """Pull a description out of ``Annotated`` metadata."""
    for item in metadata:
        if isinstance(item, str):
            return item
        if isinstance(item, FieldInfo) and item.description:
            return item.description
    return None


def _is_union(tp: Any) -> bool:
    origin = get_origin(tp)
    return origin is Union or origin is types.UnionType


def is_nullable(tp: Any) -> bool:
    """True for ``Optional[X]``, ``X | None``, ``None`` and ``Any``."""
    tp, _ = strip_annotated(tp)
    if tp is Any or tp is None or tp is type(None):
        return True
    if _is_union(tp):
        return any(arg is type(None) for arg in get_args(tp))
    return False


def unwrap_optional(tp: Any) -> Any:
    tp, _ = strip_annotated(tp)
    if _is_union(tp):
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return strip_annotated(args[0])[0]
    return tp


def is_simple_type(tp: Any) -> bool:
    """Primitive, enum or literal types bind directly from a JSON scalar."""
    tp = unwrap_optional(tp)
    if tp in _PRIMITIVES or tp is Any or get_origin(tp) is Literal:
        return True
    return isinstance(tp, type) and issubclass(tp, enum.Enum)


def _is_model_class(tp: Any) -> bool:
    if not isinstance(tp, type) or tp in _PRIMITIVES:
        return False
    if dataclasses.is_dataclass(tp) or issubclass(tp, BaseModel):
        return True
    return bool(getattr(tp, "__annotations__", None)) and tp.__module__ != "builtins"


# ---------------------------------------------------------------------------
# schema generation
# ---------------------------------------------------------------------------
def schema_for_type(tp: Any, *, _visiting: set[type] | None = None) -> JsonSchema:
    """Build a JSON schema for a Python type annotation.

    Enums are described by member names, sequences become arrays, string-keyed
    mappings become objects with ``additionalProperties`` and dataclasses,
    pydantic models and annotated classes become objects with ``properties``
    and ``required``. A type that is already being expanded higher up the tree
    is emitted as a bare ``{"type": "object"}``.
    """
    visiting = _visiting if _visiting is not None else set()
    tp, metadata = strip_annotated(tp)
    schema = _schema_for(tp, visiting)
    description = describe_annotation(metadata)
    if description:
        schema = {**schema, "description": description}
    return schema


def _schema_for(tp: Any, visiting: set[type]) -> JsonSchema:
    if tp is Any or tp is object:
        return {}
    if _is_union(tp):
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return schema_for_type(args[0], _visiting=visiting)
        # Mixed unions cannot be expressed in the supported subset.
        return {}

    origin = get_origin(tp)
    if origin is Literal:
        values = list(get_args(tp))
        kind = _PRIMITIVES.get(type(values[0]), "string") if values else "string"
        return {"type": kind, "enum": values}

    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return {"type": "string", "enum": [member.name for member in tp]}

    if tp in _PRIMITIVES:
        return {"type": _PRIMITIVES[tp]}

    if tp in (list, tuple, set, frozenset):
        return {"type": "array"}
    if tp is dict:
        return {"type": "object"}

    if origin in _ARRAY_ORIGINS:
        args = [a for a in get_args(tp) if a is not Ellipsis]
        items = schema_for_type(args[0], _visiting=visiting) if args else {}
        return {"type": "array", "items": items}

    if origin in _MAPPING_ORIGINS:
        args = get_args(tp)
        schema: JsonSchema = {"type": "object"}
        if len(args) == 2 and strip_annotated(args[0])[0] is str:
            schema["additionalProperties"] = schema_for_type(args[1], _visiting=visiting)
        return schema

    if _is_model_class(tp):
        if tp in visiting:
            return {"type": "object"}
        visiting.add(tp)
        try:
            return _object_schema(tp, visiting)
        finally:
            visiting.discard(tp)

    return {"type": "string"}


def _object_schema(cls: type, visiting: set[type]) -> JsonSchema:
    properties: dict[str, JsonSchema] = {}
    required: list[str] = []

    if issubclass(cls, BaseModel):
        for name, info in cls.model_fields.items():
            annotation = info.annotation if info.annotation is not None else Any
            prop = schema_for_type(annotation, _visiting=visiting)
            if info.description:
                prop["description"] = info.description
            key = info.alias or name
            properties[key] = prop
            if info.is_required() and not is_nullable(annotation):
                required.append(key)
    else:
        hints = get_type_hints(cls, include_extras=True)
        field_defs = (
            {f.name: f for f in dataclasses.fields(cls)}
            if dataclasses.is_dataclass(cls)
            else None
        )
        for name, annotation in hints.items():
            if name.startswith("_"):
                continue
            if field_defs is not None and name not in field_defs:
                continue
            prop = schema_for_type(annotation, _visiting=visiting)
            has_default = False
            if field_defs is not None:
                fdef = field_defs[name]
                has_default = (
                    fdef.default is not dataclasses.MISSING
                    or fdef.default_factory is not dataclasses.MISSING
                )
                if "description" in fdef.metadata:
                    prop["description"] = fdef.metadata["description"]
            else:
                has_default = hasattr(cls, name)
            properties[name] = prop
            if not has_default and not is_nullable(annotation):
                required.append(name)

    schema: JsonSchema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    doc = (cls.__doc__ or "").strip()
    if doc and not dataclasses.is_dataclass(cls):
        schema["description"] = doc.splitlines()[0]
    return schema


# ---------------------------------------------------------------------------
# validation
# ---------------------------------------------------------------------------
def _matches_type(value: Any, kind: str) -> bool:
    if kind == "string":
        return isinstance(value, str)
    if kind == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == "boolean":
        return isinstance(value, bool)
    if kind == "array":
        return isinstance(value, list)
    if kind == "object":
        return isinstance(value, dict)
    if kind == "null":
        return value is None
    return True


def _join(path: str, key: str) -> str:
    return f"{path}.{key}".strip(".")


def validate_against_schema(
    value: Any, schema: JsonSchema, path: str = ""
) -> list[SchemaViolation]:
    """Return every violation of *schema* found in the decoded JSON *value*."""
    errors: list[SchemaViolation] = []
    param = path.split(".")[0].split("[")[0] if path else path

    if value is None:
        if schema.get("required"):
            errors.append(SchemaViolation(param, path, "Value required but missing.", "missing"))
        return errors

    kind = schema.get("type")
    kinds = kind if isinstance(kind, list) else [kind] if kind else []
    if kinds and not any(_matches_type(value, k) for k in kinds):
        errors.append(
            SchemaViolation(param, path, f"Expected {' or '.join(kinds)}", "type_error")
        )
        return errors

    if "enum" in schema:
        allowed = schema["enum"]
        folded = {a.casefold() for a in allowed if isinstance(a, str)}
        ok = value in allowed or (isinstance(value, str) and value.casefold() in folded)
        if not ok:
            errors.append(
                SchemaViolation(
                    param, path, f"Value {value!r} not in {allowed}", "enum_error"
                )
            )

    if isinstance(value, str):
        if "minLength" in schema and len(value) < schema["minLength"]:
            errors.append(
                SchemaViolation(
                    param, path, f"Shorter than {schema['minLength']} characters", "length_error"
                )
            )
        if "maxLength" in schema and len(value) > schema["maxLength"]:
            errors.append(
                SchemaViolation(
                    param, path, f"Longer than {schema['maxLength']} characters", "length_error"
                )
            )
        if "pattern" in schema and not re.search(schema["pattern"], value):
            errors.append(
                SchemaViolation(
                    param, path, f"Does not match pattern {schema['pattern']!r}", "pattern_error"
                )
            )

    if isinstance(value, list) and isinstance(schema.get("items"), dict):
        for idx, item in enumerate(value):
            errors.extend(validate_against_schema(item, schema["items"], f"{path}[{idx}]"))

    if isinstance(value, dict):
        properties = schema.get("properties")
        required = set(schema.get("required") or ())
        if isinstance(properties, dict):
            for key, prop_schema in properties.items():
                if key not in value or value[key] is None:
                    if key in required:
                        errors.append(
                            SchemaViolation(
                                key, _join(path, key), f"Missing required field '{key}'", "missing"
                            )
                        )
                    continue
                errors.extend(validate_against_schema(value[key], prop_schema, _join(path, key)))
        extra = schema.get("additionalProperties")
        if isinstance(extra, dict):
            known = properties or {}
            for key, item in value.items():
                if key not in known:
                    errors.extend(validate_against_schema(item, extra, _join(path, key)))

    return errors


# ---------------------------------------------------------------------------
# canonical form and cache
# ---------------------------------------------------------------------------
def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k).strip().casefold(): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, str):
        return value.strip().casefold()
    return value


def canonical_json(value: Any) -> str:
    """Key-sorted, case-folded, whitespace-free JSON used to compare arguments."""
    return json.dumps(_normalize(value), sort_keys=True, separators=(",", ":"), default=str)


class SchemaCache:
    """Thread-safe get-or-compute cache of schemas keyed by type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[Hashable, JsonSchema] = {}

    def get_or_add(self, key: Hashable, factory: Callable[[], JsonSchema]) -> JsonSchema:
        cached = self._items.get(key)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._items.get(key)
            if cached is None:
                cached = factory()
                self._items[key] = cached
            return cached

    def __contains__(self, key: Hashable) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


# ---------------------------------------------------------------------------
# enum names
# ---------------------------------------------------------------------------
def coerce_enum_names(tp: Any, value: Any) -> Any:
    """Replace enum member names in decoded JSON with the members' values.

    Schemas describe enums by member name, while pydantic validates enums by
    value; this walks *value* alongside *tp* so both spellings are accepted.
    Matching is case-insensitive and anything unrecognised is left untouched.
    """
    tp = unwrap_optional(tp)
    if value is None:
        return value

    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        if isinstance(value, str):
            folded = value.strip().casefold()
            for member in tp:
                if member.name.casefold() == folded:
                    return member.value
        return value

    origin = get_origin(tp)
    if origin in _ARRAY_ORIGINS and isinstance(value, list):
        args = [a for a in get_args(tp) if a is not Ellipsis]
        if not args:
            return value
        if origin is tuple and len(args) == len(value) and Ellipsis not in get_args(tp):
            return [coerce_enum_names(a, v) for a, v in zip(args, value)]
        return [coerce_enum_names(args[0], v) for v in value]

    if origin in _MAPPING_ORIGINS and isinstance(value, dict):
        args = get_args(tp)
        if len(args) != 2:
            return value
        return {k: coerce_enum_names(args[1], v) for k, v in value.items()}

    if _is_model_class(tp) and isinstance(value, dict):
        hints = _field_annotations(tp)
        return {k: coerce_enum_names(hints[k], v) if k in hints else v for k, v in value.items()}

    return value


def _field_annotations(cls: type) -> dict[str, Any]:
    if issubclass(cls, BaseModel):
        out: dict[str, Any] = {}
        for name, info in cls.model_fields.items():
            annotation = info.annotation if info.annotation is not None else Any
            out[name] = annotation
            if info.alias:
                out[info.alias] = annotation
        return out
    return get_type_hints(cls)


@functools.lru_cache(maxsize=256)
def _cached_adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def type_adapter(tp: Any) -> TypeAdapter:
    """Cached pydantic TypeAdapter for *tp*."""
    try:
        return _cached_adapter(tp)
    except TypeError:
        # unhashable Annotated metadata
        return TypeAdapter(tp)
