"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Transport negotiation: pick a wire transport for one server and open it.

URL configs without an explicit transport move through
``unresolved -> probe_sent -> streamable_http_selected | legacy_selected | failed``
with a single ``initialize`` probe and no retries.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from functools import partial
from typing import Any

import httpx
from mcp.types import Implementation

from toolmesh.log import ToolsLogger, make_logger
from toolmesh.mcp.connection import MCPConnection, SessionFactory
from toolmesh.mcp.transport import (
    DEFAULT_OPENERS,
    ProbePost,
    TransportOpener,
    authorization_header,
    build_probe_request,
    http_post,
    is_4xx_error,
)
from toolmesh.mcp.types import (
    WS_SCHEMES,
    CommandServerConfig,
    MCPConfigurationError,
    MCPConnectionError,
    ServerConfig,
    TransportKind,
    TransportSelection,
    UrlServerConfig,
)
from toolmesh.mcp.utils import resolve_server_config

PROBE_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}


class TransportNegotiator:
    """
    Select and construct the transport for one server config.

    ``post``, ``openers`` and ``session_factory`` replace the network-facing
    pieces (urllib probe, SDK transports, ``ClientSession``).
    """

    def __init__(
        self,
        *,
        logger: ToolsLogger | None = None,
        post: ProbePost | None = None,
        openers: Mapping[TransportKind, TransportOpener] | None = None,
        session_factory: SessionFactory | None = None,
        client_info: Implementation | None = None,
        probe_timeout_s: float = 10.0,
    ) -> None:
        self._logger = make_logger(logger)
        self._post = post or http_post
        self._openers: dict[TransportKind, TransportOpener] = {
            **DEFAULT_OPENERS,
            **(openers or {}),
        }
        self._session_factory = session_factory
        self._client_info = client_info or Implementation(name="toolmesh", version="0.1.0")
        self._probe_timeout_s = probe_timeout_s

    @property
    def logger(self) -> ToolsLogger:
        return self._logger

    async def select(self, config: ServerConfig | Mapping[str, Any], server_name: str) -> TransportSelection:
        """Decide the transport, probing http(s) URLs that name none."""
        config = resolve_server_config(server_name, config)

        if isinstance(config, CommandServerConfig):
            return TransportSelection("stdio")

        explicit = config.explicit_transport
        if explicit is not None:
            self._logger.debug(
                'MCP server "%s": using explicit transport %s', server_name, explicit
            )
            return TransportSelection(explicit)

        if config.scheme in WS_SCHEMES:
            return TransportSelection("websocket")

        return await self.probe(config, server_name)

    async def probe_headers(self, config: UrlServerConfig, server_name: str) -> dict[str, str]:
        """Merge probe headers: base, auth token, transport option headers, top-level."""
        headers = dict(PROBE_HEADERS)
        streamable = config.streamable_http_options
        sse = config.sse_options

        provider = None
        if streamable is not None and streamable.auth_provider is not None:
            provider = streamable.auth_provider
        elif sse is not None and sse.auth_provider is not None:
            provider = sse.auth_provider
        if provider is not None and not isinstance(provider, httpx.Auth):
            try:
                authorization = await authorization_header(provider)
            except Exception as e:  # noqa: BLE001
                self._logger.debug(
                    'MCP server "%s": failed to get OAuth tokens for probe: %s',
                    server_name,
                    e,
                )
            else:
                if authorization:
                    headers["Authorization"] = authorization

        if streamable is not None:
            headers.update(streamable.headers)
        if sse is not None:
            headers.update(sse.headers)
        headers.update(config.headers)
        return headers

    async def probe(self, config: UrlServerConfig, server_name: str) -> TransportSelection:
        self._logger.debug(
            'MCP server "%s": transport unresolved, probing %s', server_name, config.url
        )
        payload = json.dumps(build_probe_request()).encode("utf-8")
        headers = await self.probe_headers(config, server_name)

        self._logger.debug('MCP server "%s": probe sent', server_name)
        try:
            status, reason = await asyncio.to_thread(
                self._post, config.url, payload, headers, self._probe_timeout_s
            )
        except Exception as e:  # noqa: BLE001
            if is_4xx_error(e):
                self._logger.info(
                    'MCP server "%s": probe failed with a 4xx error (%s), '
                    "falling back to SSE transport",
                    server_name,
                    e,
                )
                return TransportSelection("sse", detected=True)
            self._logger.error('MCP server "%s": transport probe failed: %s', server_name, e)
            raise MCPConnectionError(
                f'MCP server "{server_name}": transport probe failed: {e}'
            ) from e

        if 200 <= status < 300:
            self._logger.info(
                'MCP server "%s": probe returned HTTP %s, using streamable HTTP transport',
                server_name,
                status,
            )
            return TransportSelection("streamable_http", probe_status=status, detected=True)
        if 400 <= status < 500:
            self._logger.info(
                'MCP server "%s": probe returned HTTP %s, falling back to SSE transport',
                server_name,
                status,
            )
            return TransportSelection("sse", probe_status=status, detected=True)

        self._logger.error(
            'MCP server "%s": probe returned HTTP %s %s', server_name, status, reason
        )
        raise MCPConnectionError(f"HTTP {status}: {reason}")

    def connection(
        self, config: ServerConfig, server_name: str, selection: TransportSelection
    ) -> MCPConnection:
        """Build an unstarted connection for an already selected transport."""
        opener = self._openers.get(selection.kind)
        if opener is None:
            raise MCPConfigurationError(
                f'MCP server "{server_name}": unsupported transport {selection.kind}'
            )
        return MCPConnection(
            server_name,
            selection,
            partial(opener, config, server_name=server_name, logger=self._logger),
            client_info=self._client_info,
            session_factory=self._session_factory,
            logger=self._logger,
        )

    async def resolve(self, config: ServerConfig | Mapping[str, Any], server_name: str) -> MCPConnection:
        """Select, open and initialize the transport; return a started connection."""
        config = resolve_server_config(server_name, config)
        self._logger.info(
            'MCP server "%s": initializing with: %s', server_name, config.describe()
        )
        selection = await self.select(config, server_name)
        connection = self.connection(config, server_name, selection)
        await connection.start()
        return connection
