"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Transport layer: the HTTP transport probe and the MCP SDK transport openers.
"""

from __future__ import annotations

import os
import re
import sys
import time
import urllib.error
import urllib.request
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import httpx
from mcp import StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamable_http_client
from mcp.client.websocket import websocket_client

from toolmesh.mcp.types import (
    CommandServerConfig,
    MCPConfigurationError,
    ServerConfig,
    SseOptions,
    StreamableHttpOptions,
    TransportKind,
    UrlServerConfig,
)

PROBE_PROTOCOL_VERSION = "2024-11-05"
PROBE_CLIENT_INFO = {"name": "mcp-transport-test", "version": "1.0.0"}

DEFAULT_HTTP_TIMEOUT_S = 30.0
DEFAULT_SSE_READ_TIMEOUT_S = 300.0

_4XX_PATTERN = re.compile(r"(?<!\d)4\d{2}(?!\d)")
_4XX_PHRASES = (
    "Bad Request",
    "Unauthorized",
    "Forbidden",
    "Not Found",
    "Method Not Allowed",
)
_STATUS_ATTRS = ("status", "code", "status_code")

# (url, payload, headers, timeout_s) -> (status, reason)
ProbePost = Callable[[str, bytes, Mapping[str, str], float], tuple[int, str]]

# (read_stream, write_stream) pair handed to ``mcp.ClientSession``.
StreamPair = tuple[Any, Any]
TransportOpener = Callable[..., AbstractAsyncContextManager[StreamPair]]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def _token_field(tokens: Any, key: str) -> Any:
    if isinstance(tokens, Mapping):
        return tokens.get(key)
    return getattr(tokens, key, None)


async def authorization_header(provider: Any) -> str | None:
    """Return ``"<token_type> <access_token>"`` from an OAuth provider, if any."""
    tokens = await provider.tokens()
    if tokens is None:
        return None
    access_token = _token_field(tokens, "access_token")
    if not access_token:
        return None
    token_type = _token_field(tokens, "token_type") or "Bearer"
    return f"{token_type} {access_token}"


class TokenProviderAuth(httpx.Auth):
    """``httpx.Auth`` adapter that reads bearer tokens from an OAuth provider."""

    def __init__(self, provider: Any) -> None:
        self.provider = provider

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        header = await authorization_header(self.provider)
        if header:
            request.headers["Authorization"] = header
        yield request


def as_httpx_auth(provider: Any) -> httpx.Auth | None:
    if provider is None or isinstance(provider, httpx.Auth):
        return provider
    return TokenProviderAuth(provider)


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------


def build_probe_request() -> dict[str, Any]:
    """JSON-RPC ``initialize`` request used to detect streamable HTTP support."""
    return {
        "jsonrpc": "2.0",
        "id": f"transport-test-{int(time.time() * 1000)}",
        "method": "initialize",
        "params": {
            "protocolVersion": PROBE_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": dict(PROBE_CLIENT_INFO),
        },
    }


def http_post(
    url: str, payload: bytes, headers: Mapping[str, str], timeout_s: float
) -> tuple[int, str]:
    """POST ``payload`` and return ``(status, reason)``; HTTP errors are statuses, not raises."""
    req = urllib.request.Request(url, data=payload, method="POST", headers=dict(headers))
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:  # noqa: S310
            return resp.status, str(resp.reason or "")
    except urllib.error.HTTPError as e:
        return e.code, str(e.reason or "")


def _status_in_4xx(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    return isinstance(value, int) and 400 <= value < 500


def is_4xx_error(error: BaseException) -> bool:
    """Heuristically decide whether a probe failure was an HTTP 4xx."""
    holders = [error, getattr(error, "response", None)]
    for holder in holders:
        if holder is None:
            continue
        for attr in _STATUS_ATTRS:
            if _status_in_4xx(getattr(holder, attr, None)):
                return True

    message = str(error)
    if _4XX_PATTERN.search(message):
        return True
    return any(phrase in message for phrase in _4XX_PHRASES)


# ---------------------------------------------------------------------------
# Openers
# ---------------------------------------------------------------------------


def stdio_env(config: CommandServerConfig) -> dict[str, str]:
    env = dict(config.env)
    if "PATH" not in env and os.environ.get("PATH"):
        env["PATH"] = os.environ["PATH"]
    return env


@asynccontextmanager
async def open_stdio(config: ServerConfig, **_: Any) -> AsyncGenerator[StreamPair, None]:
    if not isinstance(config, CommandServerConfig):
        raise MCPConfigurationError("stdio transport requires a command")

    params = StdioServerParameters(
        command=config.command,
        args=list(config.args),
        env=stdio_env(config),
        cwd=config.cwd,
    )
    devnull = None
    if config.stderr == "ignore":
        devnull = open(os.devnull, "w", encoding="utf-8")  # noqa: SIM115
        errlog: Any = devnull
    elif config.stderr is None or config.stderr == "inherit":
        errlog = sys.stderr
    else:
        errlog = config.stderr
    try:
        async with stdio_client(params, errlog=errlog) as (read, write):
            yield read, write
    finally:
        if devnull is not None:
            devnull.close()


def _http_headers(config: UrlServerConfig, option_headers: Mapping[str, str]) -> dict[str, str]:
    return {**config.headers, **option_headers}


@asynccontextmanager
async def open_streamable_http(
    config: ServerConfig, **_: Any
) -> AsyncGenerator[StreamPair, None]:
    if not isinstance(config, UrlServerConfig):
        raise MCPConfigurationError("streamable HTTP transport requires a URL")

    options = config.streamable_http_options or StreamableHttpOptions()
    headers = _http_headers(config, options.headers)
    if options.session_id:
        headers["mcp-session-id"] = options.session_id
    timeout = httpx.Timeout(
        options.timeout_s or DEFAULT_HTTP_TIMEOUT_S,
        read=options.sse_read_timeout_s or DEFAULT_SSE_READ_TIMEOUT_S,
    )
    async with httpx.AsyncClient(
        headers=headers,
        timeout=timeout,
        auth=as_httpx_auth(options.auth_provider),
        follow_redirects=True,
    ) as http_client:
        async with streamable_http_client(
            config.url,
            http_client=http_client,
            terminate_on_close=options.terminate_on_close,
        ) as (read, write, _get_session_id):
            yield read, write


@asynccontextmanager
async def open_sse(config: ServerConfig, **_: Any) -> AsyncGenerator[StreamPair, None]:
    if not isinstance(config, UrlServerConfig):
        raise MCPConfigurationError("SSE transport requires a URL")

    options = config.sse_options or SseOptions()
    async with sse_client(
        config.url,
        headers=_http_headers(config, options.headers),
        timeout=options.timeout_s or DEFAULT_HTTP_TIMEOUT_S,
        sse_read_timeout=options.sse_read_timeout_s or DEFAULT_SSE_READ_TIMEOUT_S,
        auth=as_httpx_auth(options.auth_provider),
    ) as (read, write):
        yield read, write


@asynccontextmanager
async def open_websocket(config: ServerConfig, **_: Any) -> AsyncGenerator[StreamPair, None]:
    if not isinstance(config, UrlServerConfig):
        raise MCPConfigurationError("WebSocket transport requires a URL")

    async with websocket_client(config.url) as (read, write):
        yield read, write


DEFAULT_OPENERS: dict[TransportKind, TransportOpener] = {
    "stdio": open_stdio,
    "streamable_http": open_streamable_http,
    "sse": open_sse,
    "websocket": open_websocket,
}
