"""Collaborator interfaces consumed by the reply streamer.

The streamer never talks to storage, tools, or the client connection
directly. Callers inject implementations of these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ToolContext:
    """Tenant and conversation a tool call runs on behalf of."""

    tenant_id: str
    conversation_id: str


@dataclass(frozen=True)
class ToolExecutionResult:
    """Outcome of one tool invocation.

    Attributes:
        ok: Whether the tool handled the call successfully.
        result: Tool output (any JSON-serializable value).
        error: Failure message when ``ok`` is False.
    """

    ok: bool
    result: Any = None
    error: str | None = None


@dataclass(frozen=True)
class AiRunRecord:
    """One AI run (reply or tool call) handed to the run recorder."""

    tenant_id: str
    conversation_id: str
    config_id: str | None
    run_type: str
    request_payload: Any
    response_payload: Any
    status: str
    latency_ms: int | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ToolExecutor(Protocol):
    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext,
    ) -> ToolExecutionResult: ...


class RunRecorder(Protocol):
    async def record(self, run: AiRunRecord) -> Any: ...


class EventSink(Protocol):
    def __call__(self, event: str, data: Any) -> None: ...
