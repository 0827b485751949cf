"""Tool call runner — execute one tool call with timeout and retries.

Each completed tool call from the model becomes one ``run()`` job on the
streamer's bounded queue. The runner drives that call to a terminal
state, reporting every transition to the client as a ``tool_call``
event:

    queued -> executing -> (retrying)* -> success | error | timeout

``queued`` is emitted by the streamer when the job is enqueued; the rest
come from here.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.ai.protocols import AiRunRecord
from src.ai.streaming.models import ToolResult
from src.exceptions import ToolTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.ai.protocols import EventSink, RunRecorder, ToolContext, ToolExecutionResult, ToolExecutor
    from src.ai.streaming.models import ToolCallStatus, ToolResultStatus
    from src.ai.streaming.submission import ToolOutputSubmitter

logger = logging.getLogger(__name__)

UNKNOWN_TOOL = "unknown_tool"
UNKNOWN_ERROR = "unknown_error"
MISSING_TOOL_NAME = "missing_tool_name"


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry bounds for tool execution.

    Attributes:
        timeout_seconds: Per-attempt timeout; non-positive or non-finite
            disables it.
        max_retries: Extra attempts after the first (0 = one attempt).
        retry_delay_seconds: Pause between attempts; non-positive skips it.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 1
    retry_delay_seconds: float = 0.5

    @property
    def max_attempts(self) -> int:
        return max(1, self.max_retries + 1)

    @property
    def has_timeout(self) -> bool:
        return math.isfinite(self.timeout_seconds) and self.timeout_seconds > 0


@dataclass(frozen=True)
class ToolCallRequest:
    """A fully streamed tool call handed to the runner."""

    call_id: str
    task_id: str
    name: str | None
    arguments: dict[str, Any]
    response_id: str | None = None

    def event(self, status: ToolCallStatus, **extra: Any) -> dict[str, Any]:
        """Build a ``tool_call`` sink payload, dropping ``None`` extras."""
        payload: dict[str, Any] = {
            "id": self.call_id,
            "taskId": self.task_id,
            "name": self.name or UNKNOWN_TOOL,
            "arguments": self.arguments,
            "status": status,
        }
        payload.update({key: value for key, value in extra.items() if value is not None})
        return payload


class ToolCallRunner:
    """Runs tool calls for one reply.

    Args:
        executor: Executes the named tool.
        recorder: Persists a run record for each finished call.
        send_event: Sink for ``tool_call`` events.
        context: Tenant/conversation passed to every tool.
        config_id: AI config the reply runs under (for run records).
        policy: Timeout and retry bounds.
        is_aborted: Returns True once the reply has been cancelled.
        on_result: Receives each terminal ToolResult.
        submitter: Optional tool output submitter for successful calls.
    """

    def __init__(
        self,
        *,
        executor: ToolExecutor,
        recorder: RunRecorder,
        send_event: EventSink,
        context: ToolContext,
        config_id: str | None,
        policy: RetryPolicy,
        is_aborted: Callable[[], bool],
        on_result: Callable[[ToolResult], None],
        submitter: ToolOutputSubmitter | None = None,
    ) -> None:
        self._executor = executor
        self._recorder = recorder
        self._send_event = send_event
        self._context = context
        self._config_id = config_id
        self._policy = policy
        self._is_aborted = is_aborted
        self._on_result = on_result
        self._submitter = submitter

    async def run(self, call: ToolCallRequest) -> None:
        """Drive one tool call to its terminal state.

        Exits without recording anything if the reply is aborted before a
        terminal state is reached.
        """
        if self._is_aborted():
            return

        self._send_event("tool_call", call.event("executing"))
        started = time.monotonic()

        status: ToolResultStatus | None = None
        execution: ToolExecutionResult | None = None
        last_error = UNKNOWN_ERROR
        timed_out = False

        if call.name:
            max_attempts = self._policy.max_attempts
            attempt = 0
            while attempt < max_attempts and not self._is_aborted():
                attempt += 1
                try:
                    outcome = await self._invoke(call.name, call.arguments)
                except ToolTimeoutError as e:
                    timed_out = True
                    last_error = str(e)
                except Exception as e:
                    timed_out = False
                    last_error = str(e) or type(e).__name__
                    logger.warning(
                        "Tool %s raised on attempt %d/%d: %s",
                        call.name,
                        attempt,
                        max_attempts,
                        last_error,
                    )
                else:
                    execution = outcome
                    if outcome.ok:
                        status = "success"
                        break
                    timed_out = False
                    last_error = outcome.error or UNKNOWN_ERROR

                if attempt < max_attempts and not self._is_aborted():
                    self._send_event(
                        "tool_call",
                        call.event(
                            "retrying",
                            attempt=attempt,
                            remainingAttempts=max_attempts - attempt,
                        ),
                    )
                    await self._delay()
        else:
            logger.warning("Tool call %s completed without a tool name", call.call_id)
            last_error = MISSING_TOOL_NAME

        if self._is_aborted():
            logger.info("Reply aborted; dropping result of tool call %s", call.call_id)
            return

        if status is None:
            status = "timeout" if timed_out else "error"

        tool = ToolResult(
            call_id=call.call_id,
            task_id=call.task_id,
            name=call.name or UNKNOWN_TOOL,
            arguments=call.arguments,
            status=status,
            result=execution.result if execution is not None else None,
            error=None if status == "success" else last_error,
        )
        self._on_result(tool)

        await self._record(tool, latency_ms=int((time.monotonic() - started) * 1000))

        if (
            status == "success"
            and call.response_id
            and self._submitter is not None
            and not self._is_aborted()
        ):
            await self._submitter.submit(call.response_id, tool)

        self._send_event(
            "tool_call",
            call.event(status, result=tool.result, error=tool.error),
        )

    async def _invoke(self, name: str, arguments: dict[str, Any]) -> ToolExecutionResult:
        # Each attempt gets its own copy; results keep the parsed arguments
        pending = self._executor.execute(name, dict(arguments), self._context)
        if not self._policy.has_timeout:
            return await pending

        timeout = self._policy.timeout_seconds
        task = asyncio.ensure_future(pending)
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
            raise ToolTimeoutError(
                f"Tool {name} timed out after {timeout}s",
                timeout=timeout,
            )
        # Errors raised by the tool itself (TimeoutError included) propagate as-is
        return task.result()

    async def _delay(self) -> None:
        if self._policy.retry_delay_seconds > 0:
            await asyncio.sleep(self._policy.retry_delay_seconds)

    async def _record(self, tool: ToolResult, *, latency_ms: int) -> None:
        run = AiRunRecord(
            tenant_id=self._context.tenant_id,
            conversation_id=self._context.conversation_id,
            config_id=self._config_id,
            run_type="tool_call",
            request_payload={
                "name": tool.name,
                "arguments": tool.arguments,
                "taskId": tool.task_id,
            },
            response_payload=(
                tool.result if tool.status == "success" else {"error": tool.error or UNKNOWN_ERROR}
            ),
            status=tool.status,
            latency_ms=latency_ms,
        )
        try:
            await self._recorder.record(run)
        except Exception as e:
            logger.warning("Failed to record tool run for %s: %s", tool.name, e)
