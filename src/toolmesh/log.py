"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Logger contract consumed by MCP tool conversion, plus a level-gated adapter
over stdlib logging that never mutates the shared logger.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


@runtime_checkable
class ToolsLogger(Protocol):
    """Minimal logger surface; ``logging.Logger`` satisfies it."""

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...


def parse_log_level(level: str | int) -> int:
    """Map a level name (``trace`` .. ``fatal``) or number to a logging level."""
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.strip().lower()]
    except KeyError as e:
        raise ValueError(f"Unknown log level: {level}") from e


class ToolsLoggerAdapter(logging.LoggerAdapter):
    """
    Adapter applying its own minimum level on top of the wrapped logger.

    One adapter is built per top-level call so different callers can run
    with different verbosity against the same named logger.
    """

    def __init__(self, logger: logging.Logger, level: str | int = logging.INFO) -> None:
        super().__init__(logger, {})
        self.min_level = parse_log_level(level)

    def isEnabledFor(self, level: int) -> bool:
        if level < self.min_level:
            return False
        return self.logger.isEnabledFor(level)


def make_logger(
    logger: ToolsLogger | None = None,
    *,
    level: str | int | None = None,
    name: str = "toolmesh.mcp",
) -> ToolsLogger:
    """Return the injected logger, or a fresh level-gated adapter over ``name``."""
    if logger is not None:
        return logger
    return ToolsLoggerAdapter(logging.getLogger(name), level if level is not None else "info")
