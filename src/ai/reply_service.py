"""AI reply service — stream one model reply to a client.

Builds the Responses-API request for a conversation, opens the upstream
SSE stream, and feeds every event into a ``ReplyStreamer``. When the
stream ends it emits the final ``done`` event and records the reply run.

When no API key is configured the service answers with a canned stub
reply instead, so conversations keep working while AI is being set up.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import urlparse

import httpx
from httpx_sse import aconnect_sse
from pydantic import BaseModel, Field

from src.ai.protocols import AiRunRecord
from src.ai.streaming.dispatcher import RetryPolicy
from src.ai.streaming.models import StreamSummary
from src.ai.streaming.streamer import ReplyStreamer
from src.ai.streaming.submission import ToolOutputSubmitter
from src.exceptions import ConfigurationError, UpstreamStreamError
from src.settings import get_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from src.ai.protocols import EventSink, RunRecorder
    from src.ai.tools.registry import ToolRegistry
    from src.settings import Settings

logger = logging.getLogger(__name__)

STUB_MODEL = "stub"
STUB_CHUNKS = (
    "I'm still setting up AI for this workspace, ",
    "but I've noted your request.",
    " A human agent will take over the conversation shortly.",
)

_ALLOWED_SCHEMES = {"http", "https"}


@dataclass(frozen=True)
class ReplyMessage:
    """One conversation turn sent to the model."""

    role: Literal["user", "assistant", "system"]
    content: str


class ReplyConfig(BaseModel):
    """Per-tenant (or per-queue) AI reply configuration.

    Loaded by the caller; persistence lives elsewhere.
    """

    id: str | None = None
    model: str | None = None
    system_prompt: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_output_tokens: int | None = Field(default=None, ge=1)
    tools: list[dict[str, Any]] = Field(default_factory=list)


def _tool_name(tool: dict[str, Any]) -> str | None:
    function = tool.get("function")
    if isinstance(function, dict) and isinstance(function.get("name"), str):
        return function["name"]
    name = tool.get("name")
    return name if isinstance(name, str) else None


def merge_tools(*groups: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Concatenate tool definitions, keeping the first one per name."""
    seen: set[str] = set()
    merged: list[dict[str, Any]] = []
    for group in groups:
        for tool in group:
            name = _tool_name(tool)
            if name is not None:
                if name in seen:
                    continue
                seen.add(name)
            merged.append(tool)
    return merged


def build_request_body(
    *,
    config: ReplyConfig,
    messages: list[ReplyMessage],
    tenant_id: str,
    conversation_id: str,
    default_model: str,
    registry: ToolRegistry | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the streaming Responses-API request for a reply.

    Config tools take precedence over registry tools with the same name.
    Keys whose value is ``None`` are left out.
    """
    inputs: list[dict[str, Any]] = []
    if config.system_prompt:
        inputs.append(
            {
                "role": "system",
                "content": [{"type": "input_text", "text": config.system_prompt}],
            }
        )
    for message in messages:
        content_type = "output_text" if message.role == "assistant" else "input_text"
        inputs.append(
            {
                "role": message.role,
                "content": [{"type": content_type, "text": message.content}],
            }
        )

    tools = merge_tools(config.tools, registry.payloads() if registry is not None else [])

    body: dict[str, Any] = {
        "model": config.model or default_model,
        "input": inputs,
        "temperature": config.temperature,
        "max_output_tokens": config.max_output_tokens,
        "response_format": {"type": "text"},
        "metadata": {
            "tenantId": tenant_id,
            "conversationId": conversation_id,
            **(metadata or {}),
        },
        "tools": tools or None,
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    return {key: value for key, value in body.items() if value is not None}


def usage_tokens(usage: dict[str, Any] | None) -> tuple[int | None, int | None, int | None]:
    """Extract (prompt, completion, total) token counts from a usage dict."""
    if not usage:
        return None, None, None

    def pick(*keys: str) -> int | None:
        for key in keys:
            value = usage.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
        return None

    return (
        pick("prompt_tokens", "input_tokens"),
        pick("completion_tokens", "output_tokens"),
        pick("total_tokens"),
    )


async def _record_reply(recorder: RunRecorder, run: AiRunRecord) -> None:
    try:
        await recorder.record(run)
    except Exception as e:
        logger.warning(
            "Failed to record %s reply run for conversation %s: %s",
            run.status,
            run.conversation_id,
            e,
        )


async def _stream_stub(
    *,
    tenant_id: str,
    conversation_id: str,
    config: ReplyConfig,
    send_event: EventSink,
    recorder: RunRecorder,
    started: float,
) -> StreamSummary:
    combined = ""
    for chunk in STUB_CHUNKS:
        combined += chunk
        send_event("delta", {"delta": chunk})
    send_event(
        "done",
        {
            "message": combined,
            "model": STUB_MODEL,
            "usage": None,
            "toolCalls": [],
            "status": "stubbed",
        },
    )
    await _record_reply(
        recorder,
        AiRunRecord(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.id,
            run_type="reply",
            request_payload={"stub": True},
            response_payload={"message": combined},
            status="stubbed",
            latency_ms=int((time.monotonic() - started) * 1000),
        ),
    )
    return StreamSummary(
        message=combined,
        model=STUB_MODEL,
        usage=None,
        completed=True,
        tool_calls=[],
    )


async def _consume_upstream(
    *,
    client: httpx.AsyncClient,
    url: str,
    api_key: str,
    body: dict[str, Any],
    streamer: ReplyStreamer,
    conversation_id: str,
) -> None:
    async with aconnect_sse(
        client,
        "POST",
        url,
        json=body,
        headers={"Authorization": f"Bearer {api_key}"},
    ) as event_source:
        response = event_source.response
        if response.is_error:
            await response.aread()
            raise UpstreamStreamError(
                f"Upstream streaming failed ({response.status_code} {response.reason_phrase})"
                f" :: {response.text[:500]}",
                status_code=response.status_code,
                conversation_id=conversation_id,
            )

        async for sse in event_source.aiter_sse():
            if streamer.aborted:
                return
            if not sse.data:
                continue
            if sse.data == "[DONE]":
                return
            try:
                payload = json.loads(sse.data)
            except json.JSONDecodeError:
                logger.warning("Unparseable SSE data: %s", sse.data[:200])
                continue
            streamer.handle_event(payload)


async def _consume_until_aborted(
    consume: Coroutine[Any, Any, None],
    signal: asyncio.Event | None,
) -> None:
    """Run the upstream read, cutting it short when ``signal`` fires."""
    reader = asyncio.create_task(consume)
    if signal is None:
        await reader
        return

    watcher = asyncio.create_task(signal.wait())
    try:
        await asyncio.wait({reader, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
    if not reader.done():
        reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reader
        return
    reader.result()


async def stream_reply(
    *,
    tenant_id: str,
    conversation_id: str,
    config: ReplyConfig,
    messages: list[ReplyMessage],
    send_event: EventSink,
    registry: ToolRegistry,
    recorder: RunRecorder,
    metadata: dict[str, Any] | None = None,
    signal: asyncio.Event | None = None,
    on_complete: Callable[[], None] | None = None,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> StreamSummary:
    """Stream one AI reply to ``send_event``.

    Emits ``delta`` and ``tool_call`` events while the model streams, then
    a single ``done`` event with the summary. Nothing further is emitted
    once ``signal`` is set; the run is recorded as ``aborted``.

    Args:
        tenant_id: Tenant the conversation belongs to.
        conversation_id: Conversation being replied to.
        config: AI reply configuration for the tenant/queue.
        messages: Conversation history, oldest first.
        send_event: Client sink.
        registry: Tools the model may call.
        recorder: Persists reply and tool runs.
        metadata: Extra request metadata.
        signal: Abort signal (e.g. set when the client disconnects).
        on_complete: Called after a reply finished and was recorded.
        settings: Override settings (defaults to ``get_settings()``).
        http_client: Shared client; one is created (and closed) if omitted.

    Returns:
        The reply summary.

    Raises:
        UpstreamStreamError: If the upstream rejects the request or reports
            an error mid-stream.
        ConfigurationError: If the Responses API URL is not http(s).
    """
    settings = settings or get_settings()
    started = time.monotonic()

    if not settings.ai_enabled:
        summary = await _stream_stub(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config=config,
            send_event=send_event,
            recorder=recorder,
            started=started,
        )
        if on_complete is not None:
            on_complete()
        return summary

    url = settings.responses_api_url
    if urlparse(url).scheme not in _ALLOWED_SCHEMES:
        raise ConfigurationError(f"Invalid Responses API URL '{url}'")

    body = build_request_body(
        config=config,
        messages=messages,
        tenant_id=tenant_id,
        conversation_id=conversation_id,
        default_model=settings.default_model,
        registry=registry,
        metadata=metadata,
    )
    api_key = settings.openai_api_key.get_secret_value()

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.stream_timeout_seconds, connect=10.0),
    )
    try:
        streamer = ReplyStreamer(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.id,
            model=body["model"],
            send_event=send_event,
            executor=registry,
            recorder=recorder,
            policy=RetryPolicy(
                timeout_seconds=settings.tool_timeout_seconds,
                max_retries=settings.tool_max_retries,
                retry_delay_seconds=settings.tool_retry_delay_seconds,
            ),
            max_concurrency=settings.tool_max_concurrency,
            submitter=ToolOutputSubmitter(
                client=client,
                responses_api_url=url,
                api_key=api_key,
            ),
            signal=signal,
        )
        try:
            await _consume_until_aborted(
                _consume_upstream(
                    client=client,
                    url=url,
                    api_key=api_key,
                    body=body,
                    streamer=streamer,
                    conversation_id=conversation_id,
                ),
                signal,
            )
        except Exception:
            streamer.abort()
            raise
        if signal is not None and signal.is_set():
            streamer.abort()
        summary = await streamer.finalize()
    finally:
        if owns_client:
            await client.aclose()

    tool_calls = [tool.to_dict() for tool in summary.tool_calls]
    latency_ms = int((time.monotonic() - started) * 1000)

    if streamer.aborted:
        await _record_reply(
            recorder,
            AiRunRecord(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                config_id=config.id,
                run_type="reply",
                request_payload=body,
                response_payload={"message": summary.message, "toolCalls": tool_calls},
                status="aborted",
                latency_ms=latency_ms,
            ),
        )
        return summary

    status = "success" if summary.completed else "partial"
    send_event(
        "done",
        {
            "message": summary.message,
            "model": summary.model,
            "usage": summary.usage,
            "toolCalls": tool_calls,
            "status": status,
        },
    )

    prompt_tokens, completion_tokens, total_tokens = usage_tokens(summary.usage)
    await _record_reply(
        recorder,
        AiRunRecord(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.id,
            run_type="reply",
            request_payload=body,
            response_payload={
                "message": summary.message,
                "toolCalls": tool_calls,
                "usage": summary.usage,
            },
            status=status,
            latency_ms=latency_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        ),
    )

    if on_complete is not None:
        on_complete()
    return summary
