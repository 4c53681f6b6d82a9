"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

MCP (Model Context Protocol) client side of toolmesh.

Connects to MCP servers over stdio, streamable HTTP, SSE or WebSocket and
publishes their tools as provider-safe async callables.

Quick start::

    from toolmesh.mcp import convert_mcp_to_tools

    async with await convert_mcp_to_tools(
        {"weather": {"url": "https://example.com/mcp"}},
        llm_provider="google_gemini",
    ) as toolkit:
        for tool in toolkit.tools:
            print(tool.name, tool.parameters_schema)
"""

from .binder import MCPTool, bind_tool
from .connection import MCPConnection
from .negotiation import TransportNegotiator
from .registry import MCPToolkit, MCPToolOrchestrator, ReleaseRegistry, convert_mcp_to_tools
from .transport import TokenProviderAuth, is_4xx_error
from .types import (
    CommandServerConfig,
    MCPCleanupError,
    MCPConfigurationError,
    MCPConnectionError,
    MCPInitializationError,
    MCPInvocationError,
    MCPProtocolError,
    MCPToolDescriptor,
    MCPToolsError,
    OAuthClientProvider,
    ServerConfig,
    SseOptions,
    StreamableHttpOptions,
    TransportKind,
    TransportSelection,
    UrlServerConfig,
)
from .utils import load_server_configs, resolve_server_config, resolve_server_configs

__all__ = [
    "CommandServerConfig",
    "UrlServerConfig",
    "ServerConfig",
    "StreamableHttpOptions",
    "SseOptions",
    "OAuthClientProvider",
    "TokenProviderAuth",
    "TransportKind",
    "TransportSelection",
    "MCPToolDescriptor",
    "MCPTool",
    "MCPToolkit",
    "MCPConnection",
    "TransportNegotiator",
    "MCPToolOrchestrator",
    "ReleaseRegistry",
    "MCPToolsError",
    "MCPConfigurationError",
    "MCPConnectionError",
    "MCPProtocolError",
    "MCPInvocationError",
    "MCPCleanupError",
    "MCPInitializationError",
    "bind_tool",
    "convert_mcp_to_tools",
    "is_4xx_error",
    "load_server_configs",
    "resolve_server_config",
    "resolve_server_configs",
]
