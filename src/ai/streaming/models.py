"""State and result types owned by the reply streamer."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

ToolCallStatus = Literal["queued", "executing", "retrying", "success", "error", "timeout"]
ToolResultStatus = Literal["success", "error", "timeout", "cancelled"]


@dataclass
class ToolAccumulator:
    """A tool call being assembled from streamed fragments.

    Attributes:
        call_id: Upstream tool call ID.
        name: Tool name; later non-empty values overwrite earlier ones.
        argument_chunks: JSON argument fragments in arrival order.
        response_id: Upstream response the call belongs to.
    """

    call_id: str
    name: str | None = None
    argument_chunks: list[str] = field(default_factory=list)
    response_id: str | None = None

    def update(
        self,
        *,
        name: str | None = None,
        arguments: str | None = None,
        response_id: str | None = None,
    ) -> None:
        """Merge one fragment into the accumulator in place."""
        if name:
            self.name = name
        if response_id:
            self.response_id = response_id
        if arguments:
            self.argument_chunks.append(arguments)

    @property
    def arguments_text(self) -> str:
        return "".join(self.argument_chunks)

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the accumulated arguments.

        Returns an empty dict (and logs a warning) when the text is not a
        JSON object, so a malformed call still runs.
        """
        text = self.arguments_text
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(
                "Tool call %s (%s): arguments JSON could not be parsed. Raw args: %s",
                self.call_id,
                self.name,
                text[:200],
            )
            return {}
        if not isinstance(parsed, dict):
            logger.warning(
                "Tool call %s (%s): arguments are not a JSON object, ignoring them",
                self.call_id,
                self.name,
            )
            return {}
        return parsed


@dataclass(frozen=True)
class ToolResult:
    """Terminal outcome of one tool call. Never mutated once appended."""

    call_id: str
    task_id: str
    name: str
    arguments: dict[str, Any]
    status: ToolResultStatus
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.call_id,
            "taskId": self.task_id,
            "name": self.name,
            "arguments": self.arguments,
            "status": self.status,
            "result": self.result,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class StreamSummary:
    """Read-only view of a reply's aggregated state."""

    message: str
    model: str
    usage: dict[str, Any] | None
    completed: bool
    tool_calls: list[ToolResult]

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "model": self.model,
            "usage": self.usage,
            "completed": self.completed,
            "toolCalls": [tool.to_dict() for tool in self.tool_calls],
        }
