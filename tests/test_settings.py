from __future__ import annotations

import logging

import pytest

from toolmesh.log import ToolsLoggerAdapter, make_logger, parse_log_level
from toolmesh.schemas import (
    SchemaAdapterError,
    SchemaTransformResult,
    get_schema_adapter,
    list_schema_adapters,
    normalize_schema,
    register_schema_adapter,
    reset_schema_adapters,
)
from toolmesh.settings import ToolkitSettings


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("TOOLMESH_LLM_PROVIDER", "openai")
    monkeypatch.setenv("TOOLMESH_LOG_LEVEL", "debug")
    monkeypatch.setenv("TOOLMESH_PROBE_TIMEOUT_S", "2.5")
    monkeypatch.setenv("TOOLMESH_STRICT_ARGS", "yes")
    monkeypatch.delenv("TOOLMESH_PREFIX_TOOL_NAMES", raising=False)

    settings = ToolkitSettings.from_env()

    assert settings.llm_provider == "openai"
    assert settings.log_level == "debug"
    assert settings.probe_timeout_s == 2.5
    assert settings.strict_args is True
    assert settings.prefix_tool_names is False
    assert settings.client_name == "toolmesh"


def test_parse_log_level_accepts_names_and_numbers():
    assert parse_log_level("trace") == logging.DEBUG
    assert parse_log_level("WARN") == logging.WARNING
    assert parse_log_level("fatal") == logging.CRITICAL
    assert parse_log_level(logging.INFO) == logging.INFO
    with pytest.raises(ValueError, match="Unknown log level"):
        parse_log_level("loud")


def test_logger_adapter_gates_without_touching_the_shared_logger(caplog):
    shared = logging.getLogger("toolmesh.tests.adapter")
    adapter = ToolsLoggerAdapter(shared, "warn")

    with caplog.at_level(logging.DEBUG, logger="toolmesh.tests.adapter"):
        adapter.info("hidden %s", 1)
        adapter.warning("shown %s", 2)

    assert [r.getMessage() for r in caplog.records] == ["shown 2"]
    assert shared.level == logging.NOTSET


def test_make_logger_prefers_injected_logger():
    injected = logging.getLogger("toolmesh.tests.injected")
    assert make_logger(injected, level="error") is injected
    assert isinstance(make_logger(level="debug"), ToolsLoggerAdapter)


def test_schema_adapters_can_be_registered_by_provider_id():
    def shouty(schema):
        return SchemaTransformResult(schema={**schema, "title": "LOUD"}, was_transformed=True)

    try:
        register_schema_adapter("Shouty", shouty)
        assert "shouty" in list_schema_adapters()
        assert normalize_schema({"type": "object"}, "shouty").schema["title"] == "LOUD"
        with pytest.raises(SchemaAdapterError, match="already registered"):
            register_schema_adapter("shouty", shouty)
        register_schema_adapter("openai", shouty, overwrite=True)
        assert get_schema_adapter("openai") is shouty
    finally:
        reset_schema_adapters()

    assert "shouty" not in list_schema_adapters()
    with pytest.raises(SchemaAdapterError, match="Unknown LLM provider"):
        normalize_schema({"type": "object"}, "shouty")


def test_normalize_schema_treats_missing_schema_as_empty_object():
    result = normalize_schema(None, "none")
    assert result.schema == {"type": "object", "properties": {}}
    assert result.was_transformed is False
