"""Tools the model may call while composing a reply."""

from src.ai.tools.registry import RegisteredTool, ToolRegistry

__all__ = [
    "RegisteredTool",
    "ToolRegistry",
]
