"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Thread-safe registry of schema adapters keyed by LLM provider id.
"""

from __future__ import annotations

import copy
from threading import Lock
from typing import Any, Mapping

from .nullable import openai_schema_adapter
from .restricted import gemini_schema_adapter
from .types import SchemaAdapter, SchemaAdapterError, SchemaTransformResult


def passthrough_schema_adapter(schema: Mapping[str, Any]) -> SchemaTransformResult:
    """Publish the schema unchanged (Anthropic accepts full JSON Schema)."""
    return SchemaTransformResult(schema=copy.deepcopy(dict(schema)))


_BUILTINS: dict[str, SchemaAdapter] = {
    "openai": openai_schema_adapter,
    "google_gemini": gemini_schema_adapter,
    "google_genai": gemini_schema_adapter,
    "anthropic": passthrough_schema_adapter,
    "none": passthrough_schema_adapter,
}

_REGISTRY: dict[str, SchemaAdapter] = dict(_BUILTINS)
_LOCK = Lock()


def register_schema_adapter(
    provider_id: str, adapter: SchemaAdapter, *, overwrite: bool = False
) -> None:
    """Register one adapter under a provider id."""
    key = provider_id.strip().lower()
    if not key:
        raise SchemaAdapterError("Provider id must be non-empty")
    if not callable(adapter):
        raise SchemaAdapterError(f"Schema adapter for '{key}' must be callable")

    with _LOCK:
        if key in _REGISTRY and not overwrite:
            raise SchemaAdapterError(f"Schema adapter already registered: {key}")
        _REGISTRY[key] = adapter


def get_schema_adapter(provider_id: str) -> SchemaAdapter:
    """Resolve the adapter registered for ``provider_id``."""
    key = provider_id.strip().lower()
    with _LOCK:
        adapter = _REGISTRY.get(key)
    if adapter is None:
        raise SchemaAdapterError(f"Unknown LLM provider '{provider_id}'")
    return adapter


def list_schema_adapters() -> list[str]:
    """List registered provider ids in deterministic order."""
    with _LOCK:
        return sorted(_REGISTRY.keys())


def reset_schema_adapters() -> None:
    """Drop custom registrations and restore the built-in adapters."""
    with _LOCK:
        _REGISTRY.clear()
        _REGISTRY.update(_BUILTINS)
