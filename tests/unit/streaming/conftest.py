"""Shared fixtures for streaming module tests."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ai.protocols import ToolExecutionResult
from src.ai.streaming.dispatcher import RetryPolicy
from src.ai.streaming.streamer import ReplyStreamer


def text_delta(text: str) -> dict[str, Any]:
    """Upstream output text delta, nested the way the Responses API sends it."""
    return {
        "type": "response.output_text.delta",
        "delta": {"type": "output_text.delta", "text": text},
    }


def tool_delta(
    call_id: str,
    *,
    name: str | None = None,
    arguments: str | None = None,
    response_id: str | None = None,
) -> dict[str, Any]:
    delta: dict[str, Any] = {"id": call_id}
    if name is not None:
        delta["name"] = name
    if arguments is not None:
        delta["arguments"] = arguments
    if response_id is not None:
        delta["response_id"] = response_id
    return {"type": "response.tool_call.delta", "delta": delta}


def tool_completed(call_id: str, *, response_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": "response.tool_call.completed", "id": call_id}
    if response_id is not None:
        payload["response"] = {"id": response_id}
    return payload


def stream_completed(model: str | None = None, usage: dict[str, Any] | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {}
    if model is not None:
        response["model"] = model
    if usage is not None:
        response["usage"] = usage
    return {"type": "response.completed", "response": response}


async def hang_forever(*args: Any, **kwargs: Any) -> ToolExecutionResult:
    """Executor side effect that never resolves."""
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


def make_executor(*results: Any) -> MagicMock:
    """Executor whose ``execute`` returns/raises ``results`` in order.

    A single result is returned for every call.
    """
    executor = MagicMock()
    if len(results) == 1 and not isinstance(results[0], BaseException):
        executor.execute = AsyncMock(return_value=results[0])
    else:
        executor.execute = AsyncMock(side_effect=list(results))
    return executor


@pytest.fixture
def ok_executor() -> MagicMock:
    return make_executor(ToolExecutionResult(ok=True, result={"result": 42}))


@pytest.fixture
def make_streamer(sink, run_recorder):
    """Factory building a ReplyStreamer wired to the shared sink/recorder."""

    def _make(executor: Any, **overrides: Any) -> ReplyStreamer:
        options: dict[str, Any] = {
            "tenant_id": "tenant-1",
            "conversation_id": "conversation-1",
            "config_id": "config-1",
            "model": "gpt-4o-mini",
            "send_event": sink,
            "executor": executor,
            "recorder": run_recorder,
            "policy": RetryPolicy(timeout_seconds=0.5, max_retries=0, retry_delay_seconds=0.01),
            "max_concurrency": 2,
        }
        options.update(overrides)
        return ReplyStreamer(**options)

    return _make
