"""Tool registry for AI replies.

Holds the tools the model may call during a reply, renders their
Responses-API definitions, and executes them by name. Implements the
``ToolExecutor`` protocol consumed by the reply streamer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from src.ai.protocols import ToolExecutionResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.ai.protocols import ToolContext

    ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredTool:
    """A tool the model can call.

    Attributes:
        name: Function name exposed to the model.
        description: What the tool does, shown to the model.
        parameters: JSON Schema of the arguments object.
        handler: ``async (arguments, context) -> result``.
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def payload(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Name -> tool map with execution.

    Usage::

        registry = ToolRegistry()

        @registry.tool("lookup_ticket", "Fetch a ticket by number")
        async def lookup_ticket(arguments, context):
            return {"number": arguments["number"]}

        result = await registry.execute("lookup_ticket", {"number": 7}, context)
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def register(self, tool: RegisteredTool) -> RegisteredTool:
        """Add a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        return tool

    def tool(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``register()``."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            kwargs: dict[str, Any] = {}
            if parameters is not None:
                kwargs["parameters"] = parameters
            self.register(
                RegisteredTool(name=name, description=description, handler=handler, **kwargs)
            )
            return handler

        return decorator

    def payloads(self) -> list[dict[str, Any]]:
        """Responses-API function definitions for every registered tool."""
        return [tool.payload() for tool in self._tools.values()]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext,
    ) -> ToolExecutionResult:
        """Run a tool by name.

        Handler exceptions are turned into a failed result so the reply
        streamer can retry them like any other handled failure.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool '%s'", name)
            return ToolExecutionResult(ok=False, error="unknown_tool")

        try:
            result = await tool.handler(arguments, context)
        except Exception as e:
            logger.warning(
                "Tool %s failed for conversation %s: %s",
                name,
                context.conversation_id,
                e,
            )
            return ToolExecutionResult(ok=False, error=str(e) or type(e).__name__)

        return ToolExecutionResult(ok=True, result=result)
