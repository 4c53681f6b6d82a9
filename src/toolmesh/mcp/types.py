"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Server configuration models, tool descriptors and the error hierarchy for
MCP tool conversion.
"""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from typing import IO, Any, Literal, Mapping, Protocol, Union, runtime_checkable

TransportKind = Literal["stdio", "streamable_http", "sse", "websocket"]

StderrSink = Union[Literal["inherit", "ignore"], int, IO[str]]

# Explicit transport names accepted in configs, mapped onto a TransportKind.
TRANSPORT_ALIASES: dict[str, TransportKind] = {
    "stdio": "stdio",
    "http": "streamable_http",
    "streamable_http": "streamable_http",
    "streamable-http": "streamable_http",
    "streamablehttp": "streamable_http",
    "sse": "sse",
    "ws": "websocket",
    "websocket": "websocket",
}

HTTP_SCHEMES = frozenset({"http", "https"})
WS_SCHEMES = frozenset({"ws", "wss"})


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class MCPToolsError(RuntimeError):
    """Base MCP tools error."""


class MCPConfigurationError(MCPToolsError):
    """Raised when a server configuration is malformed or conflicting."""


class MCPConnectionError(MCPToolsError):
    """Raised when a transport cannot be constructed or connected."""


class MCPProtocolError(MCPToolsError):
    """Raised when a remote response during initialize/catalog fetch is invalid."""


class MCPInvocationError(MCPToolsError):
    """Raised when a ``tools/call`` request fails."""


class MCPCleanupError(MCPToolsError):
    """Raised when releasing a server connection fails."""


class MCPInitializationError(MCPToolsError):
    """Raised when one MCP server fails to initialize."""

    def __init__(self, server_name: str, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.server_name = server_name
        self.details = details


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@runtime_checkable
class OAuthClientProvider(Protocol):
    """
    OAuth client contract consumed by the transport layer.

    Only ``tokens()`` is used by transport negotiation; the remaining methods
    belong to the authorization flow that lives outside this package.
    """

    async def tokens(self) -> Any:
        """Return current tokens (``access_token``/``token_type``) or None."""
        ...

    async def save_tokens(self, tokens: Any) -> None:
        ...

    async def code_verifier(self) -> str:
        ...

    async def save_code_verifier(self, code_verifier: str) -> None:
        ...

    async def redirect_to_authorization(self, authorization_url: str) -> None:
        ...


# ---------------------------------------------------------------------------
# Server configs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StreamableHttpOptions:
    """
    Options for the streamable HTTP transport.

    Attributes:
        auth_provider: OAuth provider or ready ``httpx.Auth`` instance.
        headers: Headers sent with every request, merged over the top-level
            headers; these win on a key clash.
        session_id: Resume an existing MCP session (sent as ``mcp-session-id``).
        timeout_s: HTTP timeout for regular requests.
        sse_read_timeout_s: How long to wait for new events on the stream.
        terminate_on_close: Send a session DELETE when the transport closes.
    """

    auth_provider: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    session_id: str | None = None
    timeout_s: float | None = None
    sse_read_timeout_s: float | None = None
    terminate_on_close: bool = True


@dataclass(frozen=True, slots=True)
class SseOptions:
    """Options for the legacy SSE transport."""

    auth_provider: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout_s: float | None = None
    sse_read_timeout_s: float | None = None


@dataclass(frozen=True, slots=True)
class CommandServerConfig:
    """
    Local MCP server spawned as a child process and spoken to over stdio.

    Attributes:
        command: Executable to launch.
        args: Command-line arguments.
        env: Environment for the child; ``PATH`` is filled in when missing.
        cwd: Working directory for the child.
        stderr: Where child stderr goes: ``"inherit"``, ``"ignore"``, a file
            descriptor or a text stream. ``None`` inherits.
        transport: Optional explicit transport; only ``"stdio"`` is valid.
    """

    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    stderr: StderrSink | None = None
    transport: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.command, str) or not self.command.strip():
            raise MCPConfigurationError("Command to be specified")
        if self.transport is not None:
            kind = TRANSPORT_ALIASES.get(self.transport.strip().lower())
            if kind is None:
                raise MCPConfigurationError(f"Unknown transport type: {self.transport}")
            if kind != "stdio":
                raise MCPConfigurationError(
                    f"Transport '{self.transport}' requires a URL, not a command"
                )
        if isinstance(self.stderr, str) and self.stderr not in ("inherit", "ignore"):
            raise MCPConfigurationError(
                f"stderr must be 'inherit', 'ignore', a file descriptor or a stream: {self.stderr}"
            )

    @property
    def explicit_transport(self) -> TransportKind | None:
        return "stdio" if self.transport is not None else None

    def describe(self) -> dict[str, Any]:
        """Loggable view; environment values are not included."""
        return {
            "command": self.command,
            "args": list(self.args),
            "env": sorted(self.env),
            "cwd": self.cwd,
        }


@dataclass(frozen=True, slots=True)
class UrlServerConfig:
    """
    Remote MCP server reached over HTTP(S) or WebSocket.

    Attributes:
        url: Server endpoint (for example: https://example.com/mcp).
        transport: Optional explicit transport (``http``/``streamable_http``,
            ``sse``, ``ws``/``websocket``). When unset, http(s) URLs are
            probed and ws(s) URLs use WebSocket.
        headers: Headers used by the probe and sent by both HTTP transports.
            Transport option headers are merged over them per key.
        streamable_http_options: Streamable HTTP transport options.
        sse_options: SSE transport options.
    """

    url: str
    transport: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    streamable_http_options: StreamableHttpOptions | None = None
    sse_options: SseOptions | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise MCPConfigurationError("Either a command or a valid URL must be specified")
        parsed = urllib.parse.urlparse(self.url)
        if not parsed.scheme or not parsed.netloc:
            raise MCPConfigurationError(f"Invalid URL: {self.url}")
        scheme = parsed.scheme.lower()
        if scheme not in HTTP_SCHEMES | WS_SCHEMES:
            raise MCPConfigurationError(
                f"URL scheme must be http, https, ws or wss: {self.url}"
            )

        kind = self.explicit_transport
        if self.transport is not None and kind is None:
            raise MCPConfigurationError(f"Unknown transport type: {self.transport}")
        if kind == "stdio":
            raise MCPConfigurationError("Transport 'stdio' requires a command, not a URL")
        if kind in ("streamable_http", "sse") and scheme not in HTTP_SCHEMES:
            raise MCPConfigurationError(
                f"URL protocol to be http: or https: for transport '{self.transport}': {self.url}"
            )
        if kind == "websocket" and scheme not in WS_SCHEMES:
            raise MCPConfigurationError(
                f"URL protocol to be ws: or wss: for transport '{self.transport}': {self.url}"
            )

    @property
    def scheme(self) -> str:
        return urllib.parse.urlparse(self.url).scheme.lower()

    @property
    def explicit_transport(self) -> TransportKind | None:
        if self.transport is None:
            return None
        return TRANSPORT_ALIASES.get(self.transport.strip().lower())

    def describe(self) -> dict[str, Any]:
        """Loggable view; header values are not included."""
        return {
            "url": self.url,
            "transport": self.transport,
            "headers": sorted(self.headers),
        }


ServerConfig = Union[CommandServerConfig, UrlServerConfig]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MCPToolDescriptor:
    """Remote MCP tool descriptor as reported by ``tools/list``."""

    server_name: str
    name: str
    description: str
    input_schema: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class TransportSelection:
    """Outcome of transport negotiation for one server."""

    kind: TransportKind
    probe_status: int | None = None
    detected: bool = False
