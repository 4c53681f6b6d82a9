from __future__ import annotations

import pytest

from toolmesh.export import (
    export_tools_for_provider,
    normalize_json_schema,
    tool_to_gemini_declaration,
    tool_to_openai_tool,
)
from toolmesh.mcp import MCPTool

SEARCH = MCPTool(
    name="search",
    description="Search the index",
    parameters_schema={
        "type": "object",
        "properties": {"q": {"type": "string"}},
        "required": ["q"],
    },
    server_name="idx",
    remote_name="search",
)

PING = MCPTool(
    name="ping",
    description="Ping",
    parameters_schema={"type": "object"},
    server_name="idx",
    remote_name="ping",
)


def test_normalize_json_schema_handles_non_dict_and_defaults():
    assert normalize_json_schema("bad") == {
        "type": "object",
        "properties": {},
        "required": [],
        "additionalProperties": False,
    }


def test_normalize_json_schema_coerces_invalid_fields():
    normalized = normalize_json_schema(
        {
            "type": "array",
            "properties": {"ok": {"type": "string"}, "bad": None},
            "required": ["ok", "missing", 42],
            "additionalProperties": "invalid",
        }
    )

    assert normalized["type"] == "object"
    assert normalized["properties"] == {"ok": {"type": "string"}, "bad": {}}
    assert normalized["required"] == ["ok"]
    assert normalized["additionalProperties"] is False


def test_tool_to_openai_tool_maps_core_fields():
    mapped = tool_to_openai_tool(SEARCH)

    assert mapped["type"] == "function"
    assert mapped["function"]["name"] == "search"
    assert mapped["function"]["description"] == "Search the index"
    assert mapped["function"]["parameters"]["required"] == ["q"]


def test_gemini_declarations_omit_empty_parameters():
    assert tool_to_gemini_declaration(SEARCH)["parameters"]["properties"] == {
        "q": {"type": "string"}
    }
    assert tool_to_gemini_declaration(PING) == {"name": "ping", "description": "Ping"}


def test_export_tools_for_provider_supports_aliases():
    for fmt in ("openai", "litellm", "function", "openai_function"):
        assert export_tools_for_provider([SEARCH], format=fmt)[0]["function"]["name"] == "search"
    for fmt in ("gemini", "google_gemini", "google_genai"):
        assert export_tools_for_provider([SEARCH], format=fmt)[0]["name"] == "search"

    anthropic = export_tools_for_provider([SEARCH], format="Anthropic")
    assert anthropic[0]["input_schema"]["properties"] == {"q": {"type": "string"}}


def test_export_tools_for_provider_rejects_unknown_format():
    with pytest.raises(ValueError, match="Unknown export format"):
        export_tools_for_provider([SEARCH], format="unknown")
