"""Unit tests for the AI tool registry."""

import logging

import pytest

from src.ai.protocols import ToolContext
from src.ai.tools.registry import RegisteredTool, ToolRegistry


@pytest.fixture
def context():
    return ToolContext(tenant_id="tenant-1", conversation_id="conversation-1")


@pytest.fixture
def registry():
    registry = ToolRegistry()

    @registry.tool(
        "lookup",
        "Look a value up",
        parameters={"type": "object", "properties": {"value": {"type": "integer"}}},
    )
    async def lookup(arguments, context):
        return {"value": arguments.get("value"), "tenant": context.tenant_id}

    @registry.tool("explode", "Always fails")
    async def explode(arguments, context):
        raise RuntimeError("kaboom")

    return registry


class TestRegistration:
    def test_names_and_membership(self, registry):
        assert registry.names == ["lookup", "explode"]
        assert "lookup" in registry
        assert "missing" not in registry
        assert len(registry) == 2

    def test_duplicate_name_rejected(self, registry):
        async def handler(arguments, context):
            return None

        with pytest.raises(ValueError, match="already registered"):
            registry.register(RegisteredTool(name="lookup", description="again", handler=handler))

    def test_payloads(self, registry):
        payloads = registry.payloads()

        assert payloads[0] == {
            "type": "function",
            "function": {
                "name": "lookup",
                "description": "Look a value up",
                "parameters": {"type": "object", "properties": {"value": {"type": "integer"}}},
            },
        }
        assert payloads[1]["function"]["parameters"] == {"type": "object", "properties": {}}


class TestExecute:
    @pytest.mark.asyncio
    async def test_runs_handler(self, registry, context):
        result = await registry.execute("lookup", {"value": 7}, context)

        assert result.ok is True
        assert result.result == {"value": 7, "tenant": "tenant-1"}
        assert result.error is None

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, context, caplog):
        with caplog.at_level(logging.WARNING, logger="src.ai.tools.registry"):
            result = await registry.execute("missing", {}, context)

        assert result.ok is False
        assert result.error == "unknown_tool"
        assert "unknown tool" in caplog.text

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failed_result(self, registry, context):
        result = await registry.execute("explode", {}, context)

        assert result.ok is False
        assert result.error == "kaboom"
