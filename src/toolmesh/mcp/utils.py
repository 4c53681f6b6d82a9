"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Utility helpers for server config parsing, tool naming and MCP payload
flattening.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Iterable, Mapping

from toolmesh.mcp.types import (
    CommandServerConfig,
    MCPConfigurationError,
    MCPProtocolError,
    MCPToolDescriptor,
    ServerConfig,
    SseOptions,
    StreamableHttpOptions,
    UrlServerConfig,
)

NO_TEXT_CONTENT = "No text content available in response"

_COMMAND_KEYS = frozenset({"command", "args", "env", "cwd", "stderr"})
_URL_KEYS = frozenset(
    {"url", "headers", "streamable_http_options", "sse_options"}
)
_SHARED_KEYS = frozenset({"transport", "type"})


def _sanitize_name(value: str) -> str:
    out = re.sub(r"[^a-zA-Z0-9_]+", "_", value)
    out = out.strip("_")
    return out or "mcp"


def qualified_tool_name(server_name: str, tool_name: str, *, prefix: bool) -> str:
    """Return the published tool name, optionally prefixed by its server."""
    if not prefix:
        return tool_name
    return f"{_sanitize_name(server_name)}__{_sanitize_name(tool_name)}"


def _content_field(row: Any, key: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(key)
    return getattr(row, key, None)


def extract_text_content(content: Any) -> str:
    """Join the text blocks of an MCP content list with blank lines."""
    if isinstance(content, str):
        return content
    if not isinstance(content, (list, tuple)):
        return ""
    chunks: list[str] = []
    for row in content:
        if _content_field(row, "type") != "text":
            continue
        text = _content_field(row, "text")
        if isinstance(text, str):
            chunks.append(text)
    return "\n\n".join(chunks)


# ---------------------------------------------------------------------------
# Config parsing
# ---------------------------------------------------------------------------


def _string_map(value: Any, *, label: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise MCPConfigurationError(f"'{label}' must be a mapping")
    return {str(k): str(v) for k, v in value.items()}


def _optional_float(raw: Mapping[str, Any], key: str) -> float | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise MCPConfigurationError(f"'{key}' must be a number > 0")
    return float(value)


def _streamable_http_options(value: Any) -> StreamableHttpOptions | None:
    if value is None or isinstance(value, StreamableHttpOptions):
        return value
    if not isinstance(value, Mapping):
        raise MCPConfigurationError("'streamable_http_options' must be a mapping")
    return StreamableHttpOptions(
        auth_provider=value.get("auth_provider"),
        headers=_string_map(value.get("headers"), label="streamable_http_options.headers"),
        session_id=value.get("session_id"),
        timeout_s=_optional_float(value, "timeout_s"),
        sse_read_timeout_s=_optional_float(value, "sse_read_timeout_s"),
        terminate_on_close=bool(value.get("terminate_on_close", True)),
    )


def _sse_options(value: Any) -> SseOptions | None:
    if value is None or isinstance(value, SseOptions):
        return value
    if not isinstance(value, Mapping):
        raise MCPConfigurationError("'sse_options' must be a mapping")
    return SseOptions(
        auth_provider=value.get("auth_provider"),
        headers=_string_map(value.get("headers"), label="sse_options.headers"),
        timeout_s=_optional_float(value, "timeout_s"),
        sse_read_timeout_s=_optional_float(value, "sse_read_timeout_s"),
    )


def _parse_server_config(raw: Any) -> ServerConfig:
    if isinstance(raw, (CommandServerConfig, UrlServerConfig)):
        return raw
    if not isinstance(raw, Mapping):
        raise MCPConfigurationError(
            f"Unsupported server config type: {type(raw).__name__}"
        )

    command = raw.get("command")
    url = raw.get("url")
    if command and url:
        raise MCPConfigurationError(
            f"Cannot specify both 'command' ({command}) and 'url' ({url})"
        )
    if not command and not url:
        raise MCPConfigurationError("Either a command or a valid URL must be specified")

    transport = raw.get("transport") or raw.get("type")
    if transport is not None and not isinstance(transport, str):
        raise MCPConfigurationError("'transport' must be a string")

    if command:
        stray = sorted(set(raw) & _URL_KEYS)
        if stray:
            raise MCPConfigurationError(
                f"Command-based config cannot set {', '.join(stray)}"
            )
        args = raw.get("args") or []
        if not isinstance(args, (list, tuple)):
            raise MCPConfigurationError("'args' must be a list")
        return CommandServerConfig(
            command=str(command),
            args=tuple(str(arg) for arg in args),
            env=_string_map(raw.get("env"), label="env"),
            cwd=raw.get("cwd"),
            stderr=raw.get("stderr"),
            transport=transport,
        )

    stray = sorted(set(raw) & _COMMAND_KEYS)
    if stray:
        raise MCPConfigurationError(f"URL-based config cannot set {', '.join(stray)}")
    return UrlServerConfig(
        url=str(url).strip(),
        transport=transport,
        headers=_string_map(raw.get("headers"), label="headers"),
        streamable_http_options=_streamable_http_options(
            raw.get("streamable_http_options")
        ),
        sse_options=_sse_options(raw.get("sse_options")),
    )


def resolve_server_config(name: str, raw: Any) -> ServerConfig:
    """Resolve one server config from dict/dataclass form, naming the server on failure."""
    try:
        return _parse_server_config(raw)
    except MCPConfigurationError as e:
        raise MCPConfigurationError(f'MCP server "{name}": {e}') from e


def resolve_server_configs(configs: Mapping[str, Any]) -> dict[str, ServerConfig]:
    """Resolve a ``{name: config}`` mapping, preserving order."""
    return {name: resolve_server_config(name, raw) for name, raw in configs.items()}


def load_server_configs(path: str | Path) -> dict[str, ServerConfig]:
    """
    Load server configs from a JSON file.

    The file holds either ``{name: config}`` or ``{"mcpServers": {name: config}}``.
    """
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise MCPConfigurationError(f"Cannot read MCP server configs from {path}: {e}") from e
    if not isinstance(document, dict):
        raise MCPConfigurationError(f"MCP server config file must hold an object: {path}")
    servers = document.get("mcpServers", document)
    if not isinstance(servers, dict):
        raise MCPConfigurationError(f"'mcpServers' must be an object: {path}")
    return resolve_server_configs(servers)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def descriptors_from_catalog(server_name: str, tools: Any) -> list[MCPToolDescriptor]:
    """Validate and normalize a remote ``tools/list`` payload."""
    if not isinstance(tools, (list, tuple)):
        raise MCPProtocolError(
            f'Invalid tools/list response from MCP server "{server_name}": missing tools list'
        )

    descriptors: list[MCPToolDescriptor] = []
    for row in tools:
        name = _content_field(row, "name")
        if not isinstance(name, str) or not name.strip():
            continue
        description = _content_field(row, "description")
        schema = _content_field(row, "inputSchema")
        if schema is None and isinstance(row, Mapping):
            schema = row.get("input_schema")
        descriptors.append(
            MCPToolDescriptor(
                server_name=server_name,
                name=name,
                description=description if isinstance(description, str) else "",
                input_schema=schema if isinstance(schema, Mapping) else {"type": "object"},
            )
        )
    return descriptors


def duplicate_names(names: Iterable[str]) -> list[str]:
    """Return names that occur more than once, in first-seen order."""
    seen: set[str] = set()
    dupes: list[str] = []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes
