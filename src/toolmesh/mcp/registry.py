"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Concurrent multi-server initialization and guaranteed release.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, NamedTuple

from mcp.types import Implementation

from toolmesh.log import ToolsLogger, make_logger
from toolmesh.mcp.binder import MCPTool, bind_tool
from toolmesh.mcp.connection import MCPConnection
from toolmesh.mcp.negotiation import TransportNegotiator
from toolmesh.mcp.types import MCPCleanupError, MCPInitializationError, ServerConfig
from toolmesh.mcp.utils import descriptors_from_catalog, duplicate_names
from toolmesh.schemas import SchemaAdapter, get_schema_adapter
from toolmesh.settings import ToolkitSettings

ReleaseCallback = Callable[[], Awaitable[None]]


def initialization_error(server_name: str, error: BaseException) -> MCPInitializationError:
    """Wrap ``error``, dropping a server prefix the cause already carries."""
    prefix = f'MCP server "{server_name}": '
    detail = str(error)
    if detail.startswith(prefix):
        detail = detail[len(prefix):]
    return MCPInitializationError(
        server_name, f"{prefix}failed to initialize: {detail}", details=error
    )


class ReleaseRegistry:
    """Ordered release callbacks, run concurrently and only once."""

    def __init__(self, logger: ToolsLogger | None = None) -> None:
        self._logger = make_logger(logger)
        self._entries: list[tuple[str, ReleaseCallback]] = []
        self._release: asyncio.Future[None] | None = None

    def add(self, server_name: str, callback: ReleaseCallback) -> None:
        if self._release is not None:
            raise MCPCleanupError("Cannot register a release callback after release")
        self._entries.append((server_name, callback))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def server_names(self) -> list[str]:
        return [name for name, _ in self._entries]

    @property
    def released(self) -> bool:
        return self._release is not None and self._release.done()

    async def _release_entries(self) -> None:
        entries = list(self._entries)
        results = await asyncio.gather(*(cb() for _, cb in entries), return_exceptions=True)
        for (name, _), result in zip(entries, results):
            if isinstance(result, BaseException):
                self._logger.error('MCP server "%s": cleanup failed: %s', name, result)
            else:
                self._logger.info('MCP server "%s": session closed', name)

    async def release_all(self) -> None:
        """Run every callback; failures are logged, never raised."""
        if self._release is None:
            self._release = asyncio.ensure_future(self._release_entries())
        await asyncio.shield(self._release)


class MCPToolkit(NamedTuple):
    """Published tools plus the callback that releases every server."""

    tools: list[MCPTool]
    cleanup: Callable[[], Awaitable[None]]

    async def __aenter__(self) -> "MCPToolkit":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cleanup()


class MCPToolOrchestrator:
    """Initialize every configured server concurrently and collect its tools."""

    def __init__(
        self,
        *,
        llm_provider: str = "none",
        logger: ToolsLogger | None = None,
        negotiator: TransportNegotiator | None = None,
        schema_adapter: SchemaAdapter | None = None,
        prefix_tool_names: bool = False,
        strict_args: bool = False,
    ) -> None:
        if schema_adapter is None:
            get_schema_adapter(llm_provider)
        self.llm_provider = llm_provider
        self._logger = make_logger(logger)
        self._negotiator = negotiator or TransportNegotiator(logger=self._logger)
        self._schema_adapter = schema_adapter
        self._prefix_tool_names = prefix_tool_names
        self._strict_args = strict_args

    async def _close_failed(self, server_name: str, connection: MCPConnection) -> None:
        try:
            await connection.aclose()
        except MCPCleanupError as e:
            self._logger.error('MCP server "%s": cleanup failed: %s', server_name, e)

    async def initialize_server(
        self, server_name: str, config: ServerConfig | Mapping[str, Any]
    ) -> tuple[list[MCPTool], MCPConnection]:
        """Connect one server, fetch its catalog and bind its tools."""
        try:
            connection = await self._negotiator.resolve(config, server_name)
        except Exception as e:  # noqa: BLE001
            raise initialization_error(server_name, e) from e

        try:
            catalog = await connection.list_tools()
            descriptors = descriptors_from_catalog(server_name, catalog)
            tools = [
                bind_tool(
                    descriptor,
                    connection,
                    provider=self.llm_provider,
                    logger=self._logger,
                    schema_adapter=self._schema_adapter,
                    prefix_tool_names=self._prefix_tool_names,
                    strict_args=self._strict_args,
                )
                for descriptor in descriptors
            ]
        except Exception as e:  # noqa: BLE001
            await self._close_failed(server_name, connection)
            raise initialization_error(server_name, e) from e

        self._logger.info(
            'MCP server "%s": %d tool(s) available: %s',
            server_name,
            len(tools),
            ", ".join(tool.name for tool in tools),
        )
        return tools, connection

    async def _release_settled(
        self, names: list[str], tasks: list[asyncio.Future[Any]]
    ) -> None:
        registry = ReleaseRegistry(self._logger)
        for name, task in zip(names, tasks):
            if task.done() and not task.cancelled() and task.exception() is None:
                _, connection = task.result()
                registry.add(name, connection.aclose)
        await registry.release_all()

    async def initialize_all(
        self, configs: Mapping[str, ServerConfig | Mapping[str, Any]]
    ) -> MCPToolkit:
        """
        Initialize all servers; tools keep configuration order.

        When any server fails, every server that did initialize is released
        before the first failure (in configuration order) is raised.
        """
        names = list(configs)
        tasks = [
            asyncio.ensure_future(self.initialize_server(name, configs[name]))
            for name in names
        ]
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._release_settled(names, tasks)
            raise

        registry = ReleaseRegistry(self._logger)
        tools: list[MCPTool] = []
        failures: list[tuple[str, BaseException]] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                self._logger.error('MCP server "%s": initialization failed: %s', name, result)
                failures.append((name, result))
                continue
            server_tools, connection = result
            registry.add(name, connection.aclose)
            tools.extend(server_tools)

        if failures:
            await registry.release_all()
            name, error = failures[0]
            if isinstance(error, MCPInitializationError):
                raise error
            raise initialization_error(name, error) from error

        for dupe in duplicate_names(tool.name for tool in tools):
            self._logger.warning(
                'Tool name "%s" is published by more than one MCP server', dupe
            )
        self._logger.info(
            "MCP servers initialized: %d tool(s) from %d server(s)", len(tools), len(names)
        )
        return MCPToolkit(tools=tools, cleanup=registry.release_all)


async def convert_mcp_to_tools(
    configs: Mapping[str, ServerConfig | Mapping[str, Any]],
    *,
    llm_provider: str | None = None,
    logger: ToolsLogger | None = None,
    log_level: str | int | None = None,
    settings: ToolkitSettings | None = None,
    negotiator: TransportNegotiator | None = None,
    schema_adapter: SchemaAdapter | None = None,
    prefix_tool_names: bool | None = None,
    strict_args: bool | None = None,
) -> MCPToolkit:
    """
    Connect every configured MCP server and publish its tools.

    Keyword arguments win over ``settings``, which default to
    ``ToolkitSettings.from_env()``.

    Example:
        tools, cleanup = await convert_mcp_to_tools(
            {"fs": {"command": "npx", "args": ["-y", "@modelcontextprotocol/server-filesystem", "."]}},
            llm_provider="openai",
        )
        try:
            print(await tools[0].invoke({"path": "."}))
        finally:
            await cleanup()
    """
    settings = settings or ToolkitSettings.from_env()
    log = make_logger(logger, level=log_level if log_level is not None else settings.log_level)
    provider = llm_provider if llm_provider is not None else settings.llm_provider

    if negotiator is None:
        negotiator = TransportNegotiator(
            logger=log,
            client_info=Implementation(
                name=settings.client_name, version=settings.client_version
            ),
            probe_timeout_s=settings.probe_timeout_s,
        )
    orchestrator = MCPToolOrchestrator(
        llm_provider=provider,
        logger=log,
        negotiator=negotiator,
        schema_adapter=schema_adapter,
        prefix_tool_names=(
            prefix_tool_names if prefix_tool_names is not None else settings.prefix_tool_names
        ),
        strict_args=strict_args if strict_args is not None else settings.strict_args,
    )
    return await orchestrator.initialize_all(configs)
