from __future__ import annotations

import asyncio
import io
import os
import sys
from contextlib import asynccontextmanager

import httpx
import pytest

from toolmesh.mcp import (
    CommandServerConfig,
    MCPConfigurationError,
    SseOptions,
    StreamableHttpOptions,
    TokenProviderAuth,
    UrlServerConfig,
)
from toolmesh.mcp import transport
from toolmesh.mcp.transport import (
    as_httpx_auth,
    open_sse,
    open_stdio,
    open_streamable_http,
    open_websocket,
)


def run_async(coro):
    return asyncio.run(coro)


class StaticTokens:
    def __init__(self, tokens):
        self._tokens = tokens

    async def tokens(self):
        return self._tokens


@pytest.fixture
def recorded(monkeypatch):
    calls: dict[str, dict] = {}

    @asynccontextmanager
    async def fake_stdio_client(params, errlog=None):
        calls["stdio"] = {"params": params, "errlog": errlog}
        yield "read", "write"

    @asynccontextmanager
    async def fake_streamable_http_client(url, *, http_client, terminate_on_close=True):
        calls["streamable_http"] = {
            "url": url,
            "headers": dict(http_client.headers),
            "timeout": http_client.timeout,
            "auth": http_client.auth,
            "terminate_on_close": terminate_on_close,
        }
        yield "read", "write", lambda: None

    @asynccontextmanager
    async def fake_sse_client(url, **kwargs):
        calls["sse"] = {"url": url, **kwargs}
        yield "read", "write"

    monkeypatch.setattr(transport, "stdio_client", fake_stdio_client)
    monkeypatch.setattr(transport, "streamable_http_client", fake_streamable_http_client)
    monkeypatch.setattr(transport, "sse_client", fake_sse_client)
    return calls


def test_stdio_ignore_routes_stderr_to_devnull_and_closes_it(recorded):
    config = CommandServerConfig(
        command="server", args=("--flag",), env={"PATH": "/bin"}, cwd="/srv", stderr="ignore"
    )

    async def scenario():
        async with open_stdio(config) as streams:
            assert recorded["stdio"]["errlog"].closed is False
            return streams

    streams = run_async(scenario())
    call = recorded["stdio"]

    assert streams == ("read", "write")
    assert call["params"].command == "server"
    assert call["params"].args == ["--flag"]
    assert call["params"].env == {"PATH": "/bin"}
    assert str(call["params"].cwd) == "/srv"
    assert call["errlog"].name == os.devnull
    assert call["errlog"].closed is True


@pytest.mark.parametrize(
    "stderr, expected",
    [(None, sys.stderr), ("inherit", sys.stderr), (2, 2)],
)
def test_stdio_stderr_sinks(recorded, stderr, expected):
    async def scenario():
        async with open_stdio(CommandServerConfig(command="server", stderr=stderr)):
            pass

    run_async(scenario())
    assert recorded["stdio"]["errlog"] == expected


def test_stdio_passes_text_streams_through(recorded):
    sink = io.StringIO()

    async def scenario():
        async with open_stdio(CommandServerConfig(command="server", stderr=sink)):
            pass

    run_async(scenario())
    assert recorded["stdio"]["errlog"] is sink
    assert sink.closed is False


def test_streamable_http_merges_headers_and_applies_options(recorded):
    provider = StaticTokens({"access_token": "tok"})
    config = UrlServerConfig(
        url="https://svc.example/mcp",
        transport="http",
        headers={"X-Top": "1", "X-Shared": "top"},
        streamable_http_options=StreamableHttpOptions(
            auth_provider=provider,
            headers={"X-Shared": "option"},
            session_id="session-1",
            timeout_s=5.0,
            sse_read_timeout_s=60.0,
            terminate_on_close=False,
        ),
    )

    async def scenario():
        async with open_streamable_http(config) as streams:
            return streams

    assert run_async(scenario()) == ("read", "write")
    call = recorded["streamable_http"]

    assert call["url"] == "https://svc.example/mcp"
    assert call["headers"]["x-top"] == "1"
    assert call["headers"]["x-shared"] == "option"
    assert call["headers"]["mcp-session-id"] == "session-1"
    assert call["timeout"].connect == 5.0
    assert call["timeout"].read == 60.0
    assert isinstance(call["auth"], TokenProviderAuth)
    assert call["auth"].provider is provider
    assert call["terminate_on_close"] is False


def test_streamable_http_defaults(recorded):
    async def scenario():
        async with open_streamable_http(UrlServerConfig(url="https://svc.example/mcp")):
            pass

    run_async(scenario())
    call = recorded["streamable_http"]

    assert "mcp-session-id" not in call["headers"]
    assert call["timeout"].connect == 30.0
    assert call["timeout"].read == 300.0
    assert call["auth"] is None
    assert call["terminate_on_close"] is True


def test_sse_receives_merged_headers_timeouts_and_auth(recorded):
    ready = httpx.BasicAuth("user", "pass")
    config = UrlServerConfig(
        url="https://svc.example/sse",
        transport="sse",
        headers={"X-Top": "1", "X-Shared": "top"},
        sse_options=SseOptions(auth_provider=ready, headers={"X-Shared": "option"}, timeout_s=7.0),
    )

    async def scenario():
        async with open_sse(config):
            pass

    run_async(scenario())
    call = recorded["sse"]

    assert call["url"] == "https://svc.example/sse"
    assert call["headers"] == {"X-Top": "1", "X-Shared": "option"}
    assert call["timeout"] == 7.0
    assert call["sse_read_timeout"] == 300.0
    assert call["auth"] is ready


def test_openers_reject_the_wrong_config_kind(recorded):
    async def scenario(opener, config):
        async with opener(config):
            pass

    with pytest.raises(MCPConfigurationError, match="requires a command"):
        run_async(scenario(open_stdio, UrlServerConfig(url="https://svc.example/mcp")))
    with pytest.raises(MCPConfigurationError, match="requires a URL"):
        run_async(scenario(open_sse, CommandServerConfig(command="server")))
    assert recorded == {}


def test_token_provider_auth_sets_authorization_header():
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={})

    async def fetch(provider):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), auth=TokenProviderAuth(provider)
        ) as client:
            response = await client.get("https://svc.example/mcp")
            return response.status_code

    assert run_async(fetch(StaticTokens({"access_token": "abc", "token_type": "DPoP"}))) == 200
    assert run_async(fetch(StaticTokens({"access_token": "xyz"}))) == 200
    assert run_async(fetch(StaticTokens(None))) == 200

    assert seen == ["DPoP abc", "Bearer xyz", None]


def test_as_httpx_auth_wraps_only_token_providers():
    ready = httpx.BasicAuth("user", "pass")
    provider = StaticTokens({"access_token": "abc"})

    assert as_httpx_auth(None) is None
    assert as_httpx_auth(ready) is ready
    assert isinstance(as_httpx_auth(provider), TokenProviderAuth)


def test_websocket_opener_uses_the_sdk_client(monkeypatch):
    urls: list[str] = []

    @asynccontextmanager
    async def fake_websocket_client(url):
        urls.append(url)
        yield "read", "write"

    monkeypatch.setattr(transport, "websocket_client", fake_websocket_client)

    async def scenario():
        async with open_websocket(UrlServerConfig(url="wss://svc.example/ws")) as streams:
            return streams

    assert run_async(scenario()) == ("read", "write")
    assert urls == ["wss://svc.example/ws"]
