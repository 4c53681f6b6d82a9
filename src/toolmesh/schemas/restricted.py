"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Restricted-subset schema transform.

Google Gemini function declarations accept only a narrow OpenAPI 3.0-like
subset of JSON Schema. This transform rewrites a tool parameter schema into
that subset:

  - resolves ``$ref`` against ``$defs``/``definitions`` (cycle-safe)
  - converts ``type`` arrays into one type plus ``nullable`` or an ``anyOf``
  - drops fields outside the supported set and unsupported formats
  - turns exclusive bounds into inclusive ones
  - merges ``allOf`` and demotes ``oneOf`` to ``anyOf``
  - drops ``required`` names that are missing from ``properties``, for the
    schema itself and independently for every union variant

Supported schema fields: https://ai.google.dev/api/caching#Schema
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from .types import JsonSchema, SchemaTransformResult

SUPPORTED_FIELDS = frozenset(
    {
        "type",
        "format",
        "description",
        "nullable",
        "enum",
        "maxItems",
        "minItems",
        "properties",
        "required",
        "propertyOrdering",
        "items",
        "minimum",
        "maximum",
        "minLength",
        "maxLength",
        "pattern",
        "example",
        "anyOf",
        "default",
    }
)

SUPPORTED_FORMATS: dict[str, frozenset[str]] = {
    "string": frozenset({"enum", "date-time"}),
    "number": frozenset({"float", "double"}),
    "integer": frozenset({"int32", "int64"}),
}

# Keys rewritten rather than dropped; they are not reported as removed.
_HANDLED_FIELDS = frozenset(
    {
        "$ref",
        "$defs",
        "definitions",
        "allOf",
        "oneOf",
        "exclusiveMinimum",
        "exclusiveMaximum",
    }
)

_FLOAT_EPSILON = 0.0001


@dataclass(slots=True)
class _Tracker:
    fields_removed: list[str] = field(default_factory=list)
    fields_converted: list[str] = field(default_factory=list)
    references_resolved: int = 0
    type_arrays_converted: int = 0
    formats_removed: list[str] = field(default_factory=list)
    exclusive_bounds_converted: int = 0
    required_fields_filtered: int = 0
    any_of_variants_fixed: int = 0

    def total(self) -> int:
        return (
            len(self.fields_removed)
            + len(self.fields_converted)
            + self.references_resolved
            + self.type_arrays_converted
            + len(self.formats_removed)
            + self.exclusive_bounds_converted
            + self.required_fields_filtered
            + self.any_of_variants_fixed
        )

    def summary(self) -> str:
        changes: list[str] = []
        if self.references_resolved:
            changes.append(f"{self.references_resolved} reference(s) resolved")
        if self.type_arrays_converted:
            changes.append(f"{self.type_arrays_converted} type array(s) converted")
        if self.exclusive_bounds_converted:
            changes.append(
                f"{self.exclusive_bounds_converted} exclusive bound(s) converted"
            )
        if self.required_fields_filtered:
            changes.append(
                f"{self.required_fields_filtered} invalid required field(s) filtered"
            )
        if self.any_of_variants_fixed:
            changes.append(f"{self.any_of_variants_fixed} anyOf variant(s) fixed")
        if self.formats_removed:
            kinds = list(dict.fromkeys(f.split(" ")[0] for f in self.formats_removed))
            changes.append(
                f"{len(self.formats_removed)} unsupported format(s) removed "
                f"({_preview(kinds, 3)})"
            )
        if self.fields_converted:
            changes.append(
                f"{len(self.fields_converted)} field(s) converted "
                f"({_preview(self.fields_converted, 2)})"
            )
        if self.fields_removed:
            kinds = list(dict.fromkeys(self.fields_removed))
            changes.append(
                f"{len(self.fields_removed)} unsupported field(s) removed "
                f"({_preview(kinds, 3)})"
            )
        return ", ".join(changes)


def _preview(values: list[str], limit: int) -> str:
    head = ", ".join(values[:limit])
    return head + ("..." if len(values) > limit else "")


def _ref_placeholder(ref: str) -> JsonSchema:
    return {"type": "object", "description": f"Reference: {ref}"}


def _resolve_pointer(document: Any, ref: str) -> Any:
    if ref == "#":
        return document
    if not ref.startswith("#/"):
        return None
    node = document
    for raw in ref[2:].split("/"):
        part = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(node, Mapping) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return None
    return node


def _def_name(ref: str) -> str:
    for prefix in ("#/$defs/", "#/definitions/"):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


def merge_all_of(schema: Mapping[str, Any], members: list[Any]) -> JsonSchema:
    """
    Merge ``allOf`` members into one object schema; the parent's own keys win.

    Members are expected to be dereferenced and flattened already, so their
    own ``allOf`` and ``$ref`` keys are not carried over.
    """
    merged: JsonSchema = {k: v for k, v in schema.items() if k != "allOf"}
    merged.setdefault("type", "object")
    properties: dict[str, Any] = dict(merged.get("properties") or {})
    required: list[str] = list(merged.get("required") or [])
    for member in members:
        if not isinstance(member, Mapping):
            continue
        for key, value in member.items():
            if key in ("allOf", "$ref"):
                continue
            if key == "properties" and isinstance(value, Mapping):
                for name, prop in value.items():
                    properties.setdefault(name, prop)
            elif key == "required" and isinstance(value, list):
                required.extend(n for n in value if n not in required)
            elif key == "type" and merged.get("type") == "object":
                continue
            else:
                merged.setdefault(key, value)
    if properties:
        merged["properties"] = properties
    if required:
        merged["required"] = required
    return merged


class _RestrictedTransformer:
    def __init__(self, root: Any, defs: Mapping[str, Any] | None) -> None:
        self.root = root
        self.tracker = _Tracker()
        self.base_defs: dict[str, Any] = dict(defs or {})

    def lookup(self, ref: str, defs: Mapping[str, Any]) -> Any:
        target = _resolve_pointer(self.root, ref)
        if target is None:
            target = defs.get(_def_name(ref))
        return target

    def deref(
        self, schema: Any, defs: Mapping[str, Any], stack: frozenset[str]
    ) -> tuple[Any, frozenset[str]]:
        """Follow ``$ref`` chains for merging; siblings of a ``$ref`` win."""
        while isinstance(schema, Mapping) and isinstance(schema.get("$ref"), str):
            ref = schema["$ref"]
            if ref in stack:
                return schema, stack
            target = self.lookup(ref, defs)
            if not isinstance(target, Mapping):
                return schema, stack
            self.tracker.references_resolved += 1
            siblings = {k: v for k, v in schema.items() if k != "$ref"}
            schema = {**target, **siblings}
            stack = stack | {ref}
        return schema, stack

    def merge_members(
        self, schema: Mapping[str, Any], defs: Mapping[str, Any], stack: frozenset[str]
    ) -> tuple[JsonSchema, frozenset[str]]:
        """Flatten ``allOf``; the returned stack covers every reference followed."""
        members: list[Any] = []
        for member in schema.get("allOf") or []:
            resolved, member_stack = self.deref(member, defs, stack)
            ref = resolved.get("$ref") if isinstance(resolved, Mapping) else None
            if isinstance(ref, str):
                kind = "cyclic" if ref in member_stack else "unresolved"
                self.tracker.fields_converted.append(f"$ref ({kind}): {ref}")
                resolved = _ref_placeholder(ref)
            elif isinstance(resolved, Mapping) and isinstance(resolved.get("allOf"), list):
                resolved, member_stack = self.merge_members(resolved, defs, member_stack)
            members.append(resolved)
            stack = stack | member_stack
        return merge_all_of(schema, members), stack

    def transform(
        self, schema: Any, defs: Mapping[str, Any], stack: frozenset[str]
    ) -> JsonSchema:
        if not isinstance(schema, Mapping):
            # Boolean schemas (true/false) carry no structure Gemini understands.
            return {}

        ref = schema.get("$ref")
        if isinstance(ref, str):
            if ref in stack:
                self.tracker.fields_converted.append(f"$ref (cyclic): {ref}")
                return _ref_placeholder(ref)
            target = self.lookup(ref, defs)
            if not isinstance(target, Mapping):
                self.tracker.fields_converted.append(f"$ref (unresolved): {ref}")
                return _ref_placeholder(ref)
            self.tracker.references_resolved += 1
            siblings = {k: v for k, v in schema.items() if k != "$ref"}
            return self.transform({**target, **siblings}, defs, stack | {ref})

        local_defs = [schema.get(k) for k in ("$defs", "definitions")]
        if any(isinstance(d, Mapping) for d in local_defs):
            merged_defs = dict(defs)
            for d in local_defs:
                if isinstance(d, Mapping):
                    merged_defs.update(d)
            defs = merged_defs
            self.tracker.fields_removed.append("$defs/definitions")

        all_of = schema.get("allOf")
        if isinstance(all_of, list) and "anyOf" not in schema:
            self.tracker.fields_converted.append("allOf → object merge")
            merged, merged_stack = self.merge_members(schema, defs, stack)
            return self.transform(merged, defs, merged_stack)

        result: JsonSchema = {}
        self._convert_type(schema, result)
        self._convert_format(schema, result)

        if isinstance(schema.get("description"), str) and schema["description"]:
            result["description"] = schema["description"]
        enum = schema.get("enum")
        if isinstance(enum, list):
            if enum and all(isinstance(item, str) for item in enum):
                result["enum"] = list(enum)
            else:
                self.tracker.fields_removed.append("enum (non-string)")
        if isinstance(schema.get("nullable"), bool):
            result["nullable"] = schema["nullable"]
        if "example" in schema:
            result["example"] = schema["example"]
        if "default" in schema:
            result["default"] = schema["default"]
        if isinstance(schema.get("pattern"), str) and schema["pattern"]:
            result["pattern"] = schema["pattern"]

        self._convert_bounds(schema, result)

        for key in ("minLength", "maxLength", "minItems", "maxItems"):
            if _is_number(schema.get(key)):
                result[key] = schema[key]

        items = schema.get("items")
        if isinstance(items, list):
            if items:
                self.tracker.fields_converted.append("tuple items → first item")
                result["items"] = self.transform(items[0], defs, stack)
        elif isinstance(items, Mapping):
            result["items"] = self.transform(items, defs, stack)

        properties = schema.get("properties")
        if isinstance(properties, Mapping):
            result["properties"] = {
                str(name): self.transform(prop, defs, stack)
                for name, prop in properties.items()
            }
            ordering = schema.get("propertyOrdering")
            if isinstance(ordering, list):
                result["propertyOrdering"] = [
                    n for n in ordering if n in result["properties"]
                ]
            if "type" not in result and "anyOf" not in result:
                result["type"] = "object"

        required = schema.get("required")
        if isinstance(required, list):
            valid = self._filter_required(required, result.get("properties"))
            if valid:
                result["required"] = valid

        any_of = schema.get("anyOf")
        if isinstance(any_of, list):
            result["anyOf"] = self._transform_variants(any_of, defs, stack)
        elif isinstance(schema.get("oneOf"), list):
            self.tracker.fields_converted.append("oneOf → anyOf")
            result["anyOf"] = self._transform_variants(schema["oneOf"], defs, stack)

        for key in schema:
            if key not in SUPPORTED_FIELDS and key not in _HANDLED_FIELDS:
                self.tracker.fields_removed.append(key)

        return result

    def _convert_type(self, schema: Mapping[str, Any], result: JsonSchema) -> None:
        type_ = schema.get("type")
        if isinstance(type_, list):
            self.tracker.type_arrays_converted += 1
            non_null = [t for t in type_ if t != "null"]
            has_null = "null" in type_
            if len(non_null) == 1:
                result["type"] = non_null[0]
            elif len(non_null) > 1:
                result["anyOf"] = [{"type": t} for t in non_null]
            else:
                result["type"] = "string"
            if has_null or not non_null:
                result["nullable"] = True
        elif isinstance(type_, str):
            if type_ == "null":
                self.tracker.fields_converted.append("null → nullable string")
                result["type"] = "string"
                result["nullable"] = True
            else:
                result["type"] = type_

    def _convert_format(self, schema: Mapping[str, Any], result: JsonSchema) -> None:
        fmt = schema.get("format")
        if not isinstance(fmt, str) or not fmt:
            return
        base = result.get("type")
        allowed = SUPPORTED_FORMATS.get(base) if isinstance(base, str) else None
        if allowed is not None and fmt in allowed:
            result["format"] = fmt
        else:
            self.tracker.formats_removed.append(f"{fmt} ({base})")

    def _convert_bounds(self, schema: Mapping[str, Any], result: JsonSchema) -> None:
        unit = 1 if result.get("type") == "integer" else _FLOAT_EPSILON

        minimum = schema.get("minimum")
        if _is_number(minimum):
            result["minimum"] = minimum
        maximum = schema.get("maximum")
        if _is_number(maximum):
            result["maximum"] = maximum

        exclusive_min = schema.get("exclusiveMinimum")
        if _is_number(exclusive_min):
            self.tracker.exclusive_bounds_converted += 1
            result["minimum"] = exclusive_min + unit
        elif exclusive_min is True and _is_number(minimum):
            # Draft 4 form: boolean flag modifying ``minimum``.
            self.tracker.exclusive_bounds_converted += 1
            result["minimum"] = minimum + unit

        exclusive_max = schema.get("exclusiveMaximum")
        if _is_number(exclusive_max):
            self.tracker.exclusive_bounds_converted += 1
            result["maximum"] = exclusive_max - unit
        elif exclusive_max is True and _is_number(maximum):
            self.tracker.exclusive_bounds_converted += 1
            result["maximum"] = maximum - unit

    def _filter_required(
        self, required: list[Any], properties: Mapping[str, Any] | None
    ) -> list[str]:
        valid: list[str] = []
        for name in required:
            if isinstance(name, str) and properties and name in properties:
                if name not in valid:
                    valid.append(name)
            else:
                self.tracker.required_fields_filtered += 1
        return valid

    def _transform_variants(
        self, variants: list[Any], defs: Mapping[str, Any], stack: frozenset[str]
    ) -> list[JsonSchema]:
        out: list[JsonSchema] = []
        for variant in variants:
            before = self.tracker.required_fields_filtered
            out.append(self.transform(variant, defs, stack))
            if self.tracker.required_fields_filtered > before:
                self.tracker.any_of_variants_fixed += 1
        return out


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def make_schema_restricted_compatible(
    schema: Mapping[str, Any],
    defs: Mapping[str, Any] | None = None,
) -> SchemaTransformResult:
    """Rewrite ``schema`` into the restricted OpenAPI 3.0-like subset."""
    root = copy.deepcopy(dict(schema))
    transformer = _RestrictedTransformer(root, defs)
    out = transformer.transform(root, transformer.base_defs, frozenset())
    return SchemaTransformResult(
        schema=out,
        was_transformed=transformer.tracker.total() > 0,
        changes_summary=transformer.tracker.summary(),
    )


def gemini_schema_adapter(schema: Mapping[str, Any]) -> SchemaTransformResult:
    return make_schema_restricted_compatible(schema)


def validate_restricted_schema(schema: Mapping[str, Any], path: str = "") -> list[str]:
    """Report fields and ``required`` lists that the restricted subset rejects."""
    errors: list[str] = []
    properties = schema.get("properties")
    for key, value in schema.items():
        current = f"{path}.{key}" if path else key

        if key not in SUPPORTED_FIELDS:
            errors.append(f"Unsupported field '{key}' at {current}")

        if key == "required" and isinstance(value, list):
            if isinstance(properties, Mapping):
                missing = [n for n in value if n not in properties]
                if missing:
                    errors.append(
                        f"Required field(s) [{', '.join(map(str, missing))}] "
                        f"not found in properties at {current}"
                    )
            if schema.get("type") != "object":
                errors.append(
                    f"Required field only allowed for object type, "
                    f"found {schema.get('type')} at {current}"
                )

        if key == "properties" and isinstance(value, Mapping):
            for name, prop in value.items():
                if isinstance(prop, Mapping):
                    errors.extend(validate_restricted_schema(prop, f"{current}.{name}"))
        elif key == "items" and isinstance(value, Mapping):
            errors.extend(validate_restricted_schema(value, f"{current}.items"))
        elif key == "anyOf" and isinstance(value, list):
            for index, variant in enumerate(value):
                if isinstance(variant, Mapping):
                    errors.extend(
                        validate_restricted_schema(variant, f"{current}[{index}]")
                    )
    return errors
