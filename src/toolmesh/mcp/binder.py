"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Bind remote MCP tool descriptors to live connections as provider-safe tools.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel
from pydantic_core import SchemaError

from toolmesh.log import ToolsLogger, make_logger
from toolmesh.mcp.types import MCPToolDescriptor
from toolmesh.mcp.utils import (
    NO_TEXT_CONTENT,
    _content_field,
    _sanitize_name,
    extract_text_content,
    qualified_tool_name,
)
from toolmesh.schemas import (
    SchemaAdapter,
    build_args_model,
    normalize_schema,
    validate_restricted_schema,
)

ERROR_PREFIX = "Error executing MCP tool: "

# Providers whose published tools validate arguments with a pydantic model.
ARGS_MODEL_PROVIDERS = frozenset({"none", "openai"})
RESTRICTED_PROVIDERS = frozenset({"google_gemini", "google_genai"})


def _coerce_arguments(arguments: Any) -> dict[str, Any]:
    if arguments is None:
        return {}
    if isinstance(arguments, BaseModel):
        return arguments.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if isinstance(arguments, Mapping):
        return dict(arguments)
    raise TypeError(
        f"Tool arguments must be a mapping or a pydantic model, got {type(arguments).__name__}"
    )


@dataclass(frozen=True, slots=True)
class MCPTool:
    """Provider-safe callable published for one remote MCP tool."""

    name: str
    description: str
    parameters_schema: dict[str, Any]
    server_name: str
    remote_name: str
    args_model: type[BaseModel] | None = None
    schema_changes: str = ""
    connection: Any = field(default=None, repr=False, compare=False)
    logger: Any = field(default=None, repr=False, compare=False)

    async def invoke(self, arguments: Any = None) -> str:
        """
        Call the remote tool and flatten its result to text.

        Failures come back as ``"Error executing MCP tool: ..."`` strings.
        """
        log = self.logger or make_logger()
        log.info(
            'MCP tool "%s"/"%s" received input: %s', self.server_name, self.name, arguments
        )
        try:
            payload = _coerce_arguments(arguments)
            if self.args_model is not None:
                self.args_model.model_validate(payload)
            result = await self.connection.call_tool(self.remote_name, payload)
        except Exception as e:  # noqa: BLE001
            log.warning('MCP tool "%s"/"%s" caused error: %s', self.server_name, self.name, e)
            return f"{ERROR_PREFIX}{e}"

        content = _content_field(result, "content")
        if content is None:
            log.info(
                'MCP tool "%s"/"%s" received null/undefined result', self.server_name, self.name
            )
            return ""

        text = extract_text_content(content)
        log.info(
            'MCP tool "%s"/"%s" received result (size: %d)',
            self.server_name,
            self.name,
            len(text.encode("utf-8")),
        )
        return text or NO_TEXT_CONTENT

    async def __call__(self, arguments: Any = None, **kwargs: Any) -> str:
        if arguments is None and kwargs:
            arguments = kwargs
        return await self.invoke(arguments)


def bind_tool(
    descriptor: MCPToolDescriptor,
    connection: Any,
    *,
    provider: str = "none",
    logger: ToolsLogger | None = None,
    schema_adapter: SchemaAdapter | None = None,
    prefix_tool_names: bool = False,
    strict_args: bool = False,
) -> MCPTool:
    """Normalize the descriptor's schema for ``provider`` and bind it to ``connection``."""
    log = make_logger(logger)
    name = qualified_tool_name(descriptor.server_name, descriptor.name, prefix=prefix_tool_names)

    result = normalize_schema(descriptor.input_schema, provider, adapter=schema_adapter)
    if result.was_transformed:
        log.info(
            'MCP server "%s": schema for tool "%s" adjusted for %s: %s',
            descriptor.server_name,
            descriptor.name,
            provider,
            result.changes_summary,
        )
    if provider in RESTRICTED_PROVIDERS and schema_adapter is None:
        for problem in validate_restricted_schema(result.schema):
            log.debug(
                'MCP server "%s": tool "%s" schema: %s',
                descriptor.server_name,
                descriptor.name,
                problem,
            )

    args_model = None
    if provider in ARGS_MODEL_PROVIDERS:
        try:
            args_model = build_args_model(
                result.schema,
                model_name=f"{_sanitize_name(name)}_args",
                strict=strict_args,
            )
        except (TypeError, ValueError, RecursionError, SchemaError) as e:
            log.warning(
                'MCP server "%s": tool "%s" arguments will not be validated: %s',
                descriptor.server_name,
                descriptor.name,
                e,
            )

    return MCPTool(
        name=name,
        description=descriptor.description,
        parameters_schema=result.schema,
        server_name=descriptor.server_name,
        remote_name=descriptor.name,
        args_model=args_model,
        schema_changes=result.changes_summary,
        connection=connection,
        logger=log,
    )
