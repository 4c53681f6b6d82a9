"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Provider-facing tool export utilities.

Converts published MCP tools (anything with ``name``, ``description`` and
``parameters_schema``) into the tool payloads that OpenAI-compatible
transports (OpenAI, LiteLLM), Google Gemini and Anthropic expect.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable


def normalize_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """
    Ensure schema is a safe object-parameter schema.

    Coerces invalid/malformed fields to predictable defaults so providers
    always receive a well-formed function-parameters schema.
    """
    if not isinstance(schema, dict):
        return {
            "type": "object",
            "properties": {},
            "required": [],
            "additionalProperties": False,
        }

    out = dict(schema)

    # Tool parameters should always be object-shaped.
    out["type"] = "object"

    properties_raw = out.get("properties")
    if not isinstance(properties_raw, dict):
        properties: dict[str, Any] = {}
    else:
        properties = {
            str(key): (value if isinstance(value, dict) else {})
            for key, value in properties_raw.items()
        }
    out["properties"] = properties

    required_raw = out.get("required")
    if isinstance(required_raw, list):
        required = [
            str(name)
            for name in required_raw
            if isinstance(name, str) and name in properties
        ]
    else:
        required = []
    out["required"] = required

    additional_properties = out.get("additionalProperties")
    if not isinstance(additional_properties, (bool, dict)):
        out["additionalProperties"] = False

    return out


def tool_to_openai_tool(tool: Any) -> dict[str, Any]:
    """
    Convert a tool-like object into an OpenAI-compatible function tool.

    Required attributes on `tool`:
      - name: str
      - description: str
      - parameters_schema: dict
    """
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": normalize_json_schema(tool.parameters_schema),
        },
    }


def to_openai_tools(tools: Iterable[Any]) -> list[dict[str, Any]]:
    """Convert tool-like objects into OpenAI-compatible function tools."""
    return [tool_to_openai_tool(tool) for tool in tools]


def tool_to_gemini_declaration(tool: Any) -> dict[str, Any]:
    """
    Convert a tool into a Gemini function declaration.

    The schema is expected to already be in the restricted subset
    (``llm_provider="google_gemini"``); only the root type is forced.
    Parameters are omitted for tools without properties.
    """
    declaration: dict[str, Any] = {"name": tool.name, "description": tool.description}
    schema = tool.parameters_schema
    if isinstance(schema, dict) and schema.get("properties"):
        parameters = copy.deepcopy(schema)
        parameters["type"] = "object"
        declaration["parameters"] = parameters
    return declaration


def to_gemini_function_declarations(tools: Iterable[Any]) -> list[dict[str, Any]]:
    return [tool_to_gemini_declaration(tool) for tool in tools]


def tool_to_anthropic_tool(tool: Any) -> dict[str, Any]:
    schema = tool.parameters_schema
    input_schema = copy.deepcopy(schema) if isinstance(schema, dict) else {}
    input_schema["type"] = "object"
    return {"name": tool.name, "description": tool.description, "input_schema": input_schema}


def to_anthropic_tools(tools: Iterable[Any]) -> list[dict[str, Any]]:
    return [tool_to_anthropic_tool(tool) for tool in tools]


def export_tools_for_provider(
    tools: Iterable[Any],
    *,
    format: str = "openai",
) -> list[dict[str, Any]]:
    """
    Generic export entrypoint for provider tool payloads.

    Supported formats:
      - "openai" (default), "litellm", "function", "openai_function"
      - "gemini", "google_gemini", "google_genai"
      - "anthropic"
    """
    fmt = format.lower().strip()
    if fmt in ("openai", "litellm", "function", "openai_function"):
        return to_openai_tools(tools)
    if fmt in ("gemini", "google_gemini", "google_genai"):
        return to_gemini_function_declarations(tools)
    if fmt == "anthropic":
        return to_anthropic_tools(tools)
    raise ValueError(f"Unknown export format: {format}")
