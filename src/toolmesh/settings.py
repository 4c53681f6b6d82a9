"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Toolkit settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class ToolkitSettings:
    """Explicit settings used when converting MCP servers into tools."""

    llm_provider: str = "none"
    log_level: str = "info"
    probe_timeout_s: float = 10.0
    client_name: str = "toolmesh"
    client_version: str = "0.1.0"
    strict_args: bool = False
    prefix_tool_names: bool = False

    @staticmethod
    def from_env() -> "ToolkitSettings":
        """Load settings from environment variables."""
        return ToolkitSettings(
            llm_provider=os.getenv("TOOLMESH_LLM_PROVIDER", "none"),
            log_level=os.getenv("TOOLMESH_LOG_LEVEL", "info"),
            probe_timeout_s=float(os.getenv("TOOLMESH_PROBE_TIMEOUT_S", "10")),
            client_name=os.getenv("TOOLMESH_CLIENT_NAME", "toolmesh"),
            client_version=os.getenv("TOOLMESH_CLIENT_VERSION", "0.1.0"),
            strict_args=_env_flag("TOOLMESH_STRICT_ARGS", False),
            prefix_tool_names=_env_flag("TOOLMESH_PREFIX_TOOL_NAMES", False),
        )
