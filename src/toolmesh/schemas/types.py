"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared types for provider-specific JSON Schema normalization.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Protocol

LlmProvider = Literal["openai", "google_gemini", "google_genai", "anthropic", "none"]

JsonSchema = dict[str, Any]


@dataclass(frozen=True, slots=True)
class SchemaTransformResult:
    """Transformed schema plus diagnostics about what changed."""

    schema: JsonSchema
    was_transformed: bool = False
    changes_summary: str = ""


class SchemaAdapter(Protocol):
    """Strategy turning a raw tool parameter schema into a provider-safe one."""

    def __call__(self, schema: Mapping[str, Any]) -> SchemaTransformResult: ...


class SchemaAdapterError(ValueError):
    """Raised when schema adapter registration/resolution fails."""
