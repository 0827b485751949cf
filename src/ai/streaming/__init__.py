"""Streaming module — components of the AI reply orchestrator.

Provides the upstream event parser, the bounded task queue that runs tool
calls in the background, the tool call runner, and the reply streamer
that ties them together.
"""

from src.ai.streaming.dispatcher import RetryPolicy, ToolCallRequest, ToolCallRunner
from src.ai.streaming.events import extract_text, parse_upstream_event
from src.ai.streaming.models import StreamSummary, ToolAccumulator, ToolResult
from src.ai.streaming.queue import BoundedTaskQueue
from src.ai.streaming.streamer import ReplyStreamer
from src.ai.streaming.submission import ToolOutputSubmitter

__all__ = [
    "BoundedTaskQueue",
    "ReplyStreamer",
    "RetryPolicy",
    "StreamSummary",
    "ToolAccumulator",
    "ToolCallRequest",
    "ToolCallRunner",
    "ToolOutputSubmitter",
    "ToolResult",
    "extract_text",
    "parse_upstream_event",
]
