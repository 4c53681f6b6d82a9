"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

toolmesh: publish MCP server tools as provider-safe async callables.
"""

from .export import export_tools_for_provider
from .log import ToolsLogger, ToolsLoggerAdapter
from .mcp import (
    CommandServerConfig,
    MCPInitializationError,
    MCPTool,
    MCPToolkit,
    MCPToolsError,
    UrlServerConfig,
    convert_mcp_to_tools,
    load_server_configs,
)
from .schemas import LlmProvider, SchemaTransformResult, normalize_schema
from .settings import ToolkitSettings

__version__ = "0.1.0"

__all__ = [
    "CommandServerConfig",
    "UrlServerConfig",
    "LlmProvider",
    "MCPInitializationError",
    "MCPTool",
    "MCPToolkit",
    "MCPToolsError",
    "SchemaTransformResult",
    "ToolkitSettings",
    "ToolsLogger",
    "ToolsLoggerAdapter",
    "convert_mcp_to_tools",
    "export_tools_for_provider",
    "load_server_configs",
    "normalize_schema",
]
