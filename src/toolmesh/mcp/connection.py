"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

One live MCP client connection: a transport plus a ``ClientSession``.

The SDK transports are anyio context managers that must be exited by the
task that entered them, so each connection runs them inside a lifecycle
task that parks on a closing event until ``aclose()`` is called.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from mcp import ClientSession
from mcp.types import Implementation, PaginatedRequestParams

from toolmesh.log import ToolsLogger, make_logger
from toolmesh.mcp.transport import StreamPair
from toolmesh.mcp.types import (
    MCPCleanupError,
    MCPConnectionError,
    MCPInvocationError,
    MCPProtocolError,
    TransportSelection,
)

# (read_stream, write_stream, client_info) -> ClientSession-like async context manager
SessionFactory = Callable[[Any, Any, Implementation], AbstractAsyncContextManager[Any]]


def default_session_factory(read: Any, write: Any, client_info: Implementation) -> ClientSession:
    return ClientSession(read, write, client_info=client_info)


def unwrap_exception(error: BaseException) -> BaseException:
    """Strip single-member exception groups raised by anyio task groups."""
    while isinstance(error, BaseExceptionGroup) and len(error.exceptions) == 1:
        error = error.exceptions[0]
    return error


class MCPConnection:
    """Started by the negotiator, released exactly once via ``aclose()``."""

    def __init__(
        self,
        server_name: str,
        selection: TransportSelection,
        open_transport: Callable[[], AbstractAsyncContextManager[StreamPair]],
        *,
        client_info: Implementation,
        session_factory: SessionFactory | None = None,
        logger: ToolsLogger | None = None,
    ) -> None:
        self.server_name = server_name
        self.selection = selection
        self._open_transport = open_transport
        self._client_info = client_info
        self._session_factory = session_factory or default_session_factory
        self._logger = make_logger(logger)
        self._session: Any = None
        self._task: asyncio.Task[None] | None = None
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()
        self._error: BaseException | None = None
        self._established = False
        self._closed = False

    @property
    def transport(self) -> str:
        return self.selection.kind

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._closing.is_set()

    async def _run(self) -> None:
        try:
            async with self._open_transport() as (read, write):
                async with self._session_factory(read, write, self._client_info) as session:
                    await session.initialize()
                    self._session = session
                    self._established = True
                    self._ready.set()
                    await self._closing.wait()
        except Exception as e:  # noqa: BLE001
            self._error = unwrap_exception(e)
        finally:
            self._session = None
            self._ready.set()

    async def start(self) -> "MCPConnection":
        """Open the transport, run ``initialize`` and wait until usable."""
        if self._task is not None:
            return self
        self._logger.debug(
            'MCP server "%s": connecting via %s', self.server_name, self.transport
        )
        self._task = asyncio.create_task(
            self._run(), name=f"mcp-connection:{self.server_name}"
        )
        try:
            await self._ready.wait()
        except asyncio.CancelledError:
            self._closing.set()
            self._task.cancel()
            raise

        if not self._established:
            await self._task
            error = self._error
            raise MCPConnectionError(
                f'MCP server "{self.server_name}": failed to connect via '
                f"{self.transport}: {error}"
            ) from error
        self._logger.info(
            'MCP server "%s": connected via %s', self.server_name, self.transport
        )
        return self

    def _require_session(self, exc_type: type[Exception]) -> Any:
        session = self._session
        if session is None or self._closing.is_set():
            raise exc_type(f'MCP server "{self.server_name}": connection is closed')
        return session

    async def list_tools(self) -> list[Any]:
        """Fetch the full ``tools/list`` catalog, following ``nextCursor``."""
        session = self._require_session(MCPProtocolError)
        tools: list[Any] = []
        cursor: str | None = None
        seen: set[str] = set()
        while True:
            try:
                if cursor is None:
                    result = await session.list_tools()
                else:
                    result = await session.list_tools(
                        params=PaginatedRequestParams(cursor=cursor)
                    )
            except Exception as e:
                raise MCPProtocolError(
                    f'MCP server "{self.server_name}": tools/list failed: {e}'
                ) from e

            page = getattr(result, "tools", None)
            if not isinstance(page, list):
                raise MCPProtocolError(
                    f'Invalid tools/list response from MCP server "{self.server_name}"'
                )
            tools.extend(page)

            cursor = getattr(result, "nextCursor", None)
            if not cursor or cursor in seen:
                return tools
            seen.add(cursor)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Send ``tools/call`` and return the raw SDK result."""
        session = self._require_session(MCPInvocationError)
        try:
            return await session.call_tool(name, arguments)
        except Exception as e:
            raise MCPInvocationError(
                f'MCP server "{self.server_name}": tools/call "{name}" failed: {e}'
            ) from e

    async def aclose(self) -> None:
        """Close the session and transport. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._closing.set()
        task = self._task
        if task is None:
            return
        await asyncio.gather(task, return_exceptions=True)
        self._logger.debug('MCP server "%s": connection closed', self.server_name)
        if self._established and self._error is not None:
            error = self._error
            raise MCPCleanupError(
                f'MCP server "{self.server_name}": error while closing: {error}'
            ) from error

    async def __aenter__(self) -> "MCPConnection":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
