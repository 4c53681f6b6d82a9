from __future__ import annotations

import pytest
from pydantic import ValidationError

from toolmesh.schemas import build_args_model


def test_required_and_bounded_fields_are_validated():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "count": {"type": "integer", "minimum": 0, "exclusiveMaximum": 10},
                "name": {"type": "string", "minLength": 2},
            },
            "required": ["count"],
        }
    )

    assert model.model_validate({"count": 3}).count == 3
    with pytest.raises(ValidationError):
        model.model_validate({})
    with pytest.raises(ValidationError):
        model.model_validate({"count": 10})
    with pytest.raises(ValidationError):
        model.model_validate({"count": 1, "name": "x"})


def test_enum_and_const_become_literals():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "mode": {"type": "string", "enum": ["fast", "slow"]},
                "kind": {"const": "query"},
            },
            "required": ["mode"],
        }
    )

    model.model_validate({"mode": "fast", "kind": "query"})
    with pytest.raises(ValidationError):
        model.model_validate({"mode": "medium"})
    with pytest.raises(ValidationError):
        model.model_validate({"mode": "fast", "kind": "other"})


def test_invalid_python_names_are_aliased():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "user-name": {"type": "string"},
                "class": {"type": "string"},
                "json": {"type": "string"},
            },
            "required": ["user-name", "class"],
        }
    )

    parsed = model.model_validate({"user-name": "ada", "class": "admin", "json": "{}"})
    assert parsed.model_dump(by_alias=True) == {
        "user-name": "ada",
        "class": "admin",
        "json": "{}",
    }


def test_strict_mode_forbids_unknown_keys():
    schema = {"type": "object", "properties": {"a": {"type": "string"}}}

    lenient = build_args_model(schema)
    strict = build_args_model(schema, strict=True)

    lenient.model_validate({"a": "x", "extra": 1})
    with pytest.raises(ValidationError):
        strict.model_validate({"a": "x", "extra": 1})


def test_nested_objects_and_arrays_are_checked():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "filters": {
                    "type": "object",
                    "properties": {"since": {"type": "string", "format": "date-time"}},
                    "required": ["since"],
                },
                "tags": {"type": "array", "items": {"type": "string"}, "maxItems": 2},
            },
        }
    )

    model.model_validate({"filters": {"since": "2024-01-01T00:00:00Z"}, "tags": ["a"]})
    with pytest.raises(ValidationError):
        model.model_validate({"filters": {"since": "not a date"}})
    with pytest.raises(ValidationError):
        model.model_validate({"tags": ["a", "b", "c"]})
    with pytest.raises(ValidationError):
        model.model_validate({"tags": [{"no": "strings"}]})


def test_unions_from_any_of_and_type_lists():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "value": {"anyOf": [{"type": "integer"}, {"type": "string"}]},
                "maybe": {"type": ["boolean", "null"]},
            },
            "required": ["value", "maybe"],
        }
    )

    model.model_validate({"value": 1, "maybe": None})
    model.model_validate({"value": "one", "maybe": True})
    with pytest.raises(ValidationError):
        model.model_validate({"value": [1], "maybe": True})


def test_nullable_required_field_accepts_none():
    model = build_args_model(
        {
            "type": "object",
            "properties": {"note": {"type": "string", "nullable": True}},
            "required": ["note"],
        }
    )
    assert model.model_validate({"note": None}).note is None


def test_cyclic_refs_fall_back_to_plain_mappings():
    model = build_args_model(
        {
            "type": "object",
            "properties": {"root": {"$ref": "#/$defs/Node"}},
            "$defs": {
                "Node": {
                    "type": "object",
                    "properties": {
                        "label": {"type": "string"},
                        "next": {"$ref": "#/$defs/Node"},
                    },
                    "required": ["label"],
                }
            },
        }
    )

    model.model_validate({"root": {"label": "a", "next": {"label": "b", "anything": 1}}})
    with pytest.raises(ValidationError):
        model.model_validate({"root": {"next": {}}})


def test_patterns_use_python_regex_and_invalid_patterns_are_ignored():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "word": {"type": "string", "pattern": "^(?=a)a+$"},
                "free": {"type": "string", "pattern": "("},
            },
        }
    )

    model.model_validate({"word": "aaa", "free": "anything"})
    with pytest.raises(ValidationError):
        model.model_validate({"word": "baa"})


def test_all_of_members_are_merged():
    model = build_args_model(
        {
            "allOf": [
                {"type": "object", "properties": {"a": {"type": "integer"}}, "required": ["a"]},
                {"type": "object", "properties": {"b": {"type": "string"}}},
            ]
        }
    )

    model.model_validate({"a": 1, "b": "x"})
    with pytest.raises(ValidationError):
        model.model_validate({"b": "x"})


def test_non_object_root_yields_model_without_fields():
    model = build_args_model({"type": "string"})
    assert model.model_fields == {}
    model.model_validate({"anything": 1})


def test_self_reference_through_all_of_falls_back_to_mapping():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "child": {"allOf": [{"$ref": "#"}]},
                "v": {"type": "string"},
            },
        }
    )

    model.model_validate({"child": {"child": {"anything": 1}, "v": "inner"}, "v": "outer"})
    with pytest.raises(ValidationError):
        model.model_validate({"child": {"v": 3}})


def test_root_all_of_referencing_the_root_builds_a_model():
    model = build_args_model({"allOf": [{"$ref": "#"}], "properties": {"v": {"type": "string"}}})

    assert list(model.model_fields) == ["v"]


def test_fractional_integer_bounds_are_tightened():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "n": {"type": "integer", "minimum": 0.5, "exclusiveMaximum": 3.5},
                "m": {"type": "integer", "exclusiveMinimum": 1.5, "maximum": 4.9},
                "legacy": {
                    "type": "integer",
                    "minimum": -1.5,
                    "maximum": 2.25,
                    "exclusiveMaximum": True,
                },
            },
        }
    )

    model.model_validate({"n": 1, "m": 2, "legacy": -1})
    model.model_validate({"n": 3, "m": 4, "legacy": 2})
    for bad in ({"n": 0}, {"n": 4}, {"m": 1}, {"m": 5}, {"legacy": -2}, {"legacy": 3}):
        with pytest.raises(ValidationError):
            model.model_validate(bad)


def test_malformed_length_constraints_are_ignored():
    model = build_args_model(
        {
            "type": "object",
            "properties": {
                "s": {"type": "string", "minLength": 1.5, "maxLength": -1},
                "xs": {"type": "array", "items": {"type": "integer"}, "maxItems": "2"},
            },
        }
    )

    model.model_validate({"s": "", "xs": [1, 2, 3]})
