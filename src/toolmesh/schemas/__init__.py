"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Provider-specific normalization of tool parameter schemas.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .models import build_args_model
from .nullable import accepts_null, make_schema_nullable_compatible, openai_schema_adapter
from .registry import (
    get_schema_adapter,
    list_schema_adapters,
    passthrough_schema_adapter,
    register_schema_adapter,
    reset_schema_adapters,
)
from .restricted import (
    gemini_schema_adapter,
    make_schema_restricted_compatible,
    validate_restricted_schema,
)
from .types import (
    JsonSchema,
    LlmProvider,
    SchemaAdapter,
    SchemaAdapterError,
    SchemaTransformResult,
)

logger = logging.getLogger("toolmesh.schemas")


def normalize_schema(
    schema: Mapping[str, Any] | None,
    provider: str = "none",
    *,
    adapter: SchemaAdapter | None = None,
) -> SchemaTransformResult:
    """
    Normalize one tool parameter schema for ``provider``.

    ``adapter`` replaces the provider's registered adapter. Missing or
    non-object input is treated as an empty object schema.
    """
    if not isinstance(schema, Mapping):
        schema = {"type": "object", "properties": {}}
    transform = adapter if adapter is not None else get_schema_adapter(provider)
    result = transform(schema)
    if result.was_transformed:
        logger.debug("Schema normalized for %s: %s", provider, result.changes_summary)
    return result


__all__ = [
    "JsonSchema",
    "LlmProvider",
    "SchemaAdapter",
    "SchemaAdapterError",
    "SchemaTransformResult",
    "accepts_null",
    "build_args_model",
    "gemini_schema_adapter",
    "get_schema_adapter",
    "list_schema_adapters",
    "make_schema_nullable_compatible",
    "make_schema_restricted_compatible",
    "normalize_schema",
    "openai_schema_adapter",
    "passthrough_schema_adapter",
    "register_schema_adapter",
    "reset_schema_adapters",
    "validate_restricted_schema",
]
