"""Reply streamer — single source of truth for one in-progress AI reply.

Upstream events are fed in one at a time through ``handle_event()``,
which never blocks: text deltas go straight to the client sink, while
completed tool calls are handed to a bounded queue and run in the
background. ``finalize()`` waits for that queue to drain and returns the
aggregated summary.

Usage::

    streamer = ReplyStreamer(
        tenant_id="t1",
        conversation_id="c1",
        config_id="cfg",
        model="gpt-4o-mini",
        send_event=sink,
        executor=registry,
        recorder=recorder,
    )
    for payload in events:
        streamer.handle_event(payload)
    summary = await streamer.finalize()
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from typing import TYPE_CHECKING, Any

from src.ai.protocols import ToolContext
from src.ai.streaming.dispatcher import RetryPolicy, ToolCallRequest, ToolCallRunner
from src.ai.streaming.events import (
    ErrorEvent,
    StreamCompletedEvent,
    TextDeltaEvent,
    TextDoneEvent,
    ToolCompletedEvent,
    ToolDeltaEvent,
    parse_upstream_event,
)
from src.ai.streaming.models import StreamSummary, ToolAccumulator, ToolResult
from src.ai.streaming.queue import BoundedTaskQueue
from src.exceptions import UpstreamStreamError

if TYPE_CHECKING:
    from src.ai.protocols import EventSink, RunRecorder, ToolExecutor
    from src.ai.streaming.submission import ToolOutputSubmitter

logger = logging.getLogger(__name__)


class ReplyStreamer:
    """Interpret one reply's upstream events and run its tool calls.

    Not reusable: create one per reply and call ``finalize()`` exactly
    once, after the event source is exhausted.

    Args:
        tenant_id: Tenant the reply belongs to.
        conversation_id: Conversation being replied to.
        config_id: AI config used for the reply (for run records).
        model: Requested model; replaced by the model the upstream reports.
        send_event: Client sink, called as ``send_event(name, data)``.
        executor: Runs tool calls.
        recorder: Records one run per finished tool call.
        policy: Tool timeout and retry bounds.
        max_concurrency: Tool calls allowed to run at once (min 1).
        submitter: Sends successful tool outputs back upstream.
        signal: Abort signal; once set, no further tool call is started.
    """

    def __init__(
        self,
        *,
        tenant_id: str,
        conversation_id: str,
        config_id: str | None,
        model: str,
        send_event: EventSink,
        executor: ToolExecutor,
        recorder: RunRecorder,
        policy: RetryPolicy | None = None,
        max_concurrency: int = 1,
        submitter: ToolOutputSubmitter | None = None,
        signal: asyncio.Event | None = None,
    ) -> None:
        self._send_event = send_event
        self._conversation_id = conversation_id
        self._queue = BoundedTaskQueue(max_concurrency)
        self._runner = ToolCallRunner(
            executor=executor,
            recorder=recorder,
            send_event=send_event,
            context=ToolContext(tenant_id=tenant_id, conversation_id=conversation_id),
            config_id=config_id,
            policy=policy or RetryPolicy(),
            is_aborted=lambda: self._aborted,
            on_result=self._append_result,
            submitter=submitter,
        )

        self._accumulators: dict[str, ToolAccumulator] = {}
        self._executed_calls: set[str] = set()
        self._tool_results: list[ToolResult] = []
        self._aggregated_text = ""
        self._model = model
        self._usage: dict[str, Any] | None = None
        self._completed = False
        self._aborted = False

        self._signal_watcher: asyncio.Task[Any] | None = None
        if signal is not None:
            if signal.is_set():
                self.abort()
            else:
                self._signal_watcher = asyncio.create_task(signal.wait())
                self._signal_watcher.add_done_callback(self._on_signal)

    # -- public API ---------------------------------------------------------

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def message(self) -> str:
        return self._aggregated_text

    @property
    def summary(self) -> StreamSummary:
        """Current aggregated state, without waiting for running tools."""
        return StreamSummary(
            message=self._aggregated_text,
            model=self._model,
            usage=self._usage,
            completed=self._completed,
            tool_calls=list(self._tool_results),
        )

    def abort(self) -> None:
        """Cancel the reply: stop starting tool calls and release waiters."""
        if self._aborted:
            return
        self._aborted = True
        self._queue.cancel()
        if self._signal_watcher is not None and not self._signal_watcher.done():
            self._signal_watcher.cancel()
        logger.info("Reply for conversation %s aborted", self._conversation_id)

    def handle_event(self, payload: Any) -> None:
        """Apply one decoded upstream event.

        Raises:
            UpstreamStreamError: On an upstream ``response.error`` event.
        """
        event = parse_upstream_event(payload)
        if event is None:
            return

        if isinstance(event, ErrorEvent):
            raise UpstreamStreamError(event.message, conversation_id=self._conversation_id)
        if isinstance(event, TextDeltaEvent):
            self._handle_text_delta(event)
        elif isinstance(event, TextDoneEvent):
            self._replace_if_longer(event.text)
        elif isinstance(event, ToolDeltaEvent):
            self._handle_tool_delta(event)
        elif isinstance(event, ToolCompletedEvent):
            self._handle_tool_completed(event)
        elif isinstance(event, StreamCompletedEvent):
            self._completed = True
            self._model = event.model or self._model
            self._usage = event.usage if event.usage is not None else self._usage
            self._replace_if_longer(event.output_text)

    async def finalize(self) -> StreamSummary:
        """Wait for queued tool calls to drain and return the summary."""
        await self._queue.wait_for_idle()
        if self._signal_watcher is not None and not self._signal_watcher.done():
            self._signal_watcher.cancel()
        return self.summary

    # -- event handlers -----------------------------------------------------

    def _handle_text_delta(self, event: TextDeltaEvent) -> None:
        if not event.delta:
            return
        self._aggregated_text += event.delta
        self._send_event("delta", {"delta": event.delta})

    def _replace_if_longer(self, text: str | None) -> None:
        # Aggregated text only ever grows
        if text and len(text) > len(self._aggregated_text):
            self._aggregated_text = text

    def _handle_tool_delta(self, event: ToolDeltaEvent) -> None:
        if not event.call_id:
            return
        accumulator = self._accumulators.get(event.call_id)
        if accumulator is None:
            accumulator = ToolAccumulator(call_id=event.call_id)
            self._accumulators[event.call_id] = accumulator
        accumulator.update(
            name=event.name,
            arguments=event.arguments,
            response_id=event.response_id,
        )

    def _handle_tool_completed(self, event: ToolCompletedEvent) -> None:
        call_id = event.call_id
        if not call_id or call_id in self._executed_calls:
            return

        accumulator = self._accumulators.pop(call_id, None)
        if accumulator is None:
            if not event.name:
                logger.warning("Tool call %s completed without any streamed delta", call_id)
                return
            # Some providers only send the whole call on completion
            accumulator = ToolAccumulator(call_id=call_id)
        accumulator.update(name=event.name, response_id=event.response_id)
        if event.arguments and not accumulator.argument_chunks:
            accumulator.update(arguments=event.arguments)

        self._executed_calls.add(call_id)
        call = ToolCallRequest(
            call_id=call_id,
            task_id=str(uuid.uuid4()),
            name=accumulator.name,
            arguments=accumulator.parse_arguments(),
            response_id=accumulator.response_id,
        )

        self._send_event("tool_call", call.event("queued"))
        self._queue.enqueue(functools.partial(self._runner.run, call))

    # -- callbacks ----------------------------------------------------------

    def _append_result(self, tool: ToolResult) -> None:
        self._tool_results.append(tool)

    def _on_signal(self, task: asyncio.Task[Any]) -> None:
        if not task.cancelled():
            self.abort()
