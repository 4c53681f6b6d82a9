"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Build pydantic argument models from JSON Schema tool parameters.
"""

from __future__ import annotations

import datetime
import keyword
import math
import re
import uuid
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, create_model

from .restricted import _def_name, _resolve_pointer, merge_all_of

_STRING_FORMATS: dict[str, Any] = {
    "date-time": datetime.datetime,
    "date": datetime.date,
    "time": datetime.time,
    "uuid": uuid.UUID,
    "uri": AnyUrl,
    "url": AnyUrl,
}

_LITERAL_TYPES = (str, int, bool, type(None))
_RESERVED_FIELD_NAMES = frozenset(dir(BaseModel))

# Placeholder for cyclic or unresolved references.
_OPAQUE = dict[str, Any]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _count(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return None


def _model_name(raw: str) -> str:
    name = re.sub(r"[^0-9a-zA-Z_]+", "_", raw).strip("_") or "Model"
    if name[0].isdigit():
        name = f"M_{name}"
    return name


def _needs_alias(name: str) -> bool:
    return (
        not name.isidentifier()
        or keyword.iskeyword(name)
        or name.startswith("_")
        or name.startswith("model_")
        or name in _RESERVED_FIELD_NAMES
    )


def _constrained(base: Any, **constraints: Any) -> Any:
    kept = {k: v for k, v in constraints.items() if v is not None}
    if not kept:
        return base
    return Annotated[base, Field(**kept)]


def _valid_pattern(pattern: Any) -> str | None:
    if not isinstance(pattern, str) or not pattern:
        return None
    try:
        re.compile(pattern)
    except re.error:
        return None
    return pattern


class _ModelBuilder:
    def __init__(self, root: Mapping[str, Any], *, strict: bool) -> None:
        self.root = root
        self.strict = strict
        self.defs: dict[str, Any] = {}
        for key in ("$defs", "definitions"):
            defs = root.get(key)
            if isinstance(defs, Mapping):
                self.defs.update(defs)
        self.ref_cache: dict[str, Any] = {}

    @property
    def config(self) -> ConfigDict:
        return ConfigDict(
            extra="forbid" if self.strict else "allow",
            populate_by_name=True,
            regex_engine="python-re",
        )

    def lookup(self, ref: str) -> Any:
        target = _resolve_pointer(self.root, ref)
        if target is None:
            target = self.defs.get(_def_name(ref))
        return target

    def deref(self, schema: Any, stack: frozenset[str]) -> tuple[Any, frozenset[str]]:
        while isinstance(schema, Mapping) and isinstance(schema.get("$ref"), str):
            ref = schema["$ref"]
            if ref in stack:
                return None, stack
            target = self.lookup(ref)
            if not isinstance(target, Mapping):
                return None, stack
            siblings = {k: v for k, v in schema.items() if k != "$ref"}
            schema = {**target, **siblings}
            stack = stack | {ref}
        return schema, stack

    def merge_members(
        self, schema: Mapping[str, Any], stack: frozenset[str]
    ) -> tuple[dict[str, Any], frozenset[str]]:
        members: list[Any] = []
        for member in schema.get("allOf") or []:
            resolved, member_stack = self.deref(member, stack)
            if isinstance(resolved, Mapping) and isinstance(resolved.get("allOf"), list):
                resolved, member_stack = self.merge_members(resolved, member_stack)
            members.append(resolved)
            stack = stack | member_stack
        return merge_all_of(schema, members), stack

    def annotation(self, schema: Any, name: str, stack: frozenset[str]) -> Any:
        if not isinstance(schema, Mapping):
            return Any

        ref = schema.get("$ref")
        if isinstance(ref, str):
            if ref in stack:
                return _OPAQUE
            siblings = {k: v for k, v in schema.items() if k != "$ref"}
            if not siblings and ref in self.ref_cache:
                return self.ref_cache[ref]
            target = self.lookup(ref)
            if not isinstance(target, Mapping):
                return _OPAQUE
            ann = self.annotation(
                {**target, **siblings}, _def_name(ref).split("/")[-1], stack | {ref}
            )
            if not siblings:
                self.ref_cache[ref] = ann
            return ann

        ann = self._annotation(schema, name, stack)
        if schema.get("nullable") is True:
            ann = Optional[ann]
        return ann

    def _annotation(self, schema: Mapping[str, Any], name: str, stack: frozenset[str]) -> Any:
        all_of = schema.get("allOf")
        if isinstance(all_of, list):
            merged, merged_stack = self.merge_members(schema, stack)
            return self.annotation(merged, name, merged_stack)

        if "const" in schema:
            const = schema["const"]
            if isinstance(const, _LITERAL_TYPES):
                return Literal[const]
            return Any

        enum = schema.get("enum")
        if isinstance(enum, list) and enum and all(isinstance(v, _LITERAL_TYPES) for v in enum):
            return Literal[tuple(enum)]

        for key in ("anyOf", "oneOf"):
            variants = schema.get(key)
            if isinstance(variants, list) and variants:
                base = {k: v for k, v in schema.items() if k not in ("anyOf", "oneOf")}
                options = [
                    self.annotation({**base, **v} if isinstance(v, Mapping) else v, f"{name}_{i}", stack)
                    for i, v in enumerate(variants)
                ]
                return options[0] if len(options) == 1 else Union[tuple(options)]

        type_ = schema.get("type")
        if isinstance(type_, list):
            options = [
                self._typed({**schema, "type": t}, t, f"{name}_{t}", stack)
                for t in type_
                if isinstance(t, str)
            ]
            if not options:
                return Any
            return options[0] if len(options) == 1 else Union[tuple(options)]
        if isinstance(type_, str):
            return self._typed(schema, type_, name, stack)
        if isinstance(schema.get("properties"), Mapping):
            return self._typed(schema, "object", name, stack)
        return Any

    def _typed(self, schema: Mapping[str, Any], type_: str, name: str, stack: frozenset[str]) -> Any:
        if type_ == "string":
            fmt = schema.get("format")
            if isinstance(fmt, str) and fmt in _STRING_FORMATS:
                return _STRING_FORMATS[fmt]
            return _constrained(
                str,
                min_length=_count(schema.get("minLength")),
                max_length=_count(schema.get("maxLength")),
                pattern=_valid_pattern(schema.get("pattern")),
            )
        if type_ == "integer":
            return _constrained(int, **_integer_bounds(_bounds(schema)))
        if type_ == "number":
            return _constrained(float, **_bounds(schema))
        if type_ == "boolean":
            return bool
        if type_ == "null":
            return None
        if type_ == "array":
            items = schema.get("items")
            if isinstance(items, list):
                items = items[0] if items else None
            item_ann = self.annotation(items, f"{name}_item", stack) if items is not None else Any
            return _constrained(
                list[item_ann],
                min_length=_count(schema.get("minItems")),
                max_length=_count(schema.get("maxItems")),
            )
        if type_ == "object":
            properties = schema.get("properties")
            if isinstance(properties, Mapping) and properties:
                return self.model(schema, name, stack)
            additional = schema.get("additionalProperties")
            if isinstance(additional, Mapping):
                return dict[str, self.annotation(additional, f"{name}_value", stack)]
            return dict[str, Any]
        return Any

    def model(self, schema: Mapping[str, Any], name: str, stack: frozenset[str]) -> type[BaseModel]:
        properties = schema.get("properties")
        if not isinstance(properties, Mapping):
            properties = {}
        required_raw = schema.get("required")
        required = set(required_raw) if isinstance(required_raw, list) else set()

        fields: dict[str, Any] = {}
        for index, (prop_name, prop) in enumerate(properties.items()):
            prop_name = str(prop_name)
            ann = self.annotation(prop, f"{name}_{prop_name}", stack)
            kwargs: dict[str, Any] = {}
            if isinstance(prop, Mapping) and isinstance(prop.get("description"), str):
                kwargs["description"] = prop["description"]
            field_name = prop_name
            if _needs_alias(prop_name):
                field_name = f"field_{index}"
                kwargs["alias"] = prop_name
            if prop_name in required:
                fields[field_name] = (ann, Field(..., **kwargs))
            else:
                default = prop.get("default") if isinstance(prop, Mapping) else None
                fields[field_name] = (Optional[ann], Field(default=default, **kwargs))

        model = create_model(_model_name(name), __config__=self.config, **fields)
        if isinstance(schema.get("description"), str):
            model.__doc__ = schema["description"]
        return model


def _bounds(schema: Mapping[str, Any]) -> dict[str, Any]:
    bounds: dict[str, Any] = {}
    if _is_number(schema.get("minimum")):
        key = "gt" if schema.get("exclusiveMinimum") is True else "ge"
        bounds[key] = schema["minimum"]
    if _is_number(schema.get("maximum")):
        key = "lt" if schema.get("exclusiveMaximum") is True else "le"
        bounds[key] = schema["maximum"]
    if _is_number(schema.get("exclusiveMinimum")):
        bounds.pop("ge", None)
        bounds["gt"] = schema["exclusiveMinimum"]
    if _is_number(schema.get("exclusiveMaximum")):
        bounds.pop("le", None)
        bounds["lt"] = schema["exclusiveMaximum"]
    return bounds


def _integer_bounds(bounds: dict[str, Any]) -> dict[str, int]:
    """Tighten bounds to inclusive integers; pydantic rejects fractional int bounds."""
    out: dict[str, int] = {}
    for key, value in bounds.items():
        if not math.isfinite(value):
            continue
        if key == "ge":
            out["ge"] = math.ceil(value)
        elif key == "gt":
            out["ge"] = math.floor(value) + 1
        elif key == "le":
            out["le"] = math.floor(value)
        elif key == "lt":
            out["le"] = math.ceil(value) - 1
    return out


def build_args_model(
    schema: Mapping[str, Any],
    *,
    model_name: str = "ToolArgs",
    strict: bool = False,
) -> type[BaseModel]:
    """
    Build a pydantic model that validates tool call arguments for ``schema``.

    Non-object roots yield a model without declared fields.
    """
    builder = _ModelBuilder(schema, strict=strict)
    root, stack = builder.deref(schema, frozenset())
    if not isinstance(root, Mapping):
        root = {"type": "object"}
    if isinstance(root.get("allOf"), list):
        root, stack = builder.merge_members(root, stack)
    return builder.model(root, model_name, stack)
