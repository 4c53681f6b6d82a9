"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Required-or-nullable schema transform.

Some providers (OpenAI function calling / structured outputs) reject
properties that are optional without also being nullable. This transform
walks every ``properties`` map and lets each property that is not listed in
the owning ``required`` array accept null.

Two dialects are supported:
  - "nullable": sets ``nullable: true`` on typed schemas (default).
  - "type_union": broadens ``type`` to ``[T, "null"]``.

Unions (``anyOf``/``oneOf``) get an appended ``{"type": "null"}`` variant in
both dialects. The transform is idempotent.
"""

from __future__ import annotations

import copy
from typing import Any, Literal, Mapping

from .types import JsonSchema, SchemaTransformResult

NullableDialect = Literal["nullable", "type_union"]

_NULL_VARIANT: JsonSchema = {"type": "null"}
_UNION_KEYS = ("anyOf", "oneOf")
_COMPOSITE_KEYS = ("anyOf", "oneOf", "allOf")
_DEFS_KEYS = ("$defs", "definitions")


def accepts_null(schema: Any) -> bool:
    """Return True when a schema already admits null."""
    if not isinstance(schema, Mapping):
        return False
    type_ = schema.get("type")
    if type_ == "null":
        return True
    if isinstance(type_, list) and "null" in type_:
        return True
    if schema.get("nullable") is True:
        return True
    for key in _UNION_KEYS:
        variants = schema.get(key)
        if isinstance(variants, list) and any(accepts_null(v) for v in variants):
            return True
    return False


def _make_nullable(prop: JsonSchema, dialect: NullableDialect) -> JsonSchema | None:
    """Return a nullable copy of ``prop`` or None when nothing can change."""
    if accepts_null(prop):
        return None

    for key in _UNION_KEYS:
        variants = prop.get(key)
        if isinstance(variants, list):
            return {**prop, key: [*variants, dict(_NULL_VARIANT)]}

    type_ = prop.get("type")
    if dialect == "nullable":
        if type_ is not None:
            return {**prop, "nullable": True}
        return None

    if isinstance(type_, str):
        out = {**prop, "type": [type_, "null"]}
    elif isinstance(type_, list):
        out = {**prop, "type": [*type_, "null"]}
    else:
        return {"anyOf": [prop, dict(_NULL_VARIANT)]}

    enum = out.get("enum")
    if isinstance(enum, list) and None not in enum:
        out["enum"] = [*enum, None]
    return out


class _NullableTransformer:
    def __init__(self, dialect: NullableDialect) -> None:
        self.dialect = dialect
        self.fields_changed = 0

    def transform(self, schema: Any) -> Any:
        if not isinstance(schema, dict):
            return schema

        result = dict(schema)

        properties = result.get("properties")
        if isinstance(properties, dict):
            required_raw = result.get("required")
            required = set(required_raw) if isinstance(required_raw, list) else set()
            processed: dict[str, Any] = {}
            for key, prop in properties.items():
                prop = self.transform(prop)
                if key not in required and isinstance(prop, dict):
                    nullable = _make_nullable(prop, self.dialect)
                    if nullable is not None:
                        prop = nullable
                        self.fields_changed += 1
                processed[key] = prop
            result["properties"] = processed

        for key in _COMPOSITE_KEYS:
            variants = result.get(key)
            if isinstance(variants, list):
                result[key] = [self.transform(v) for v in variants]

        items = result.get("items")
        if isinstance(items, list):
            result["items"] = [self.transform(item) for item in items]
        elif isinstance(items, dict):
            result["items"] = self.transform(items)

        additional = result.get("additionalProperties")
        if isinstance(additional, dict):
            result["additionalProperties"] = self.transform(additional)

        for key in _DEFS_KEYS:
            defs = result.get(key)
            if isinstance(defs, dict):
                result[key] = {name: self.transform(d) for name, d in defs.items()}

        return result


def make_schema_nullable_compatible(
    schema: Mapping[str, Any],
    *,
    dialect: NullableDialect = "nullable",
) -> SchemaTransformResult:
    """Make every optional property of ``schema`` accept null."""
    transformer = _NullableTransformer(dialect)
    out = transformer.transform(copy.deepcopy(dict(schema)))
    changed = transformer.fields_changed
    return SchemaTransformResult(
        schema=out,
        was_transformed=changed > 0,
        changes_summary=f"{changed} optional field(s) made nullable" if changed else "",
    )


def openai_schema_adapter(schema: Mapping[str, Any]) -> SchemaTransformResult:
    return make_schema_nullable_compatible(schema, dialect="nullable")
