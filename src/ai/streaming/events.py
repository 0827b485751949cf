"""Upstream event types for the reply streaming pipeline.

The Responses API delivers loosely shaped JSON events. They are turned
into a closed set of frozen dataclasses here, at the boundary, so the
streamer never has to probe dict shapes itself. Unknown or malformed
payloads parse to ``None`` and are ignored downstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

# Upstream ``type`` string -> event kind
EVENT_KINDS: dict[str, str] = {
    "response.error": "error",
    "response.output_text.delta": "text_delta",
    "response.output_text.done": "text_done",
    "response.tool_call.delta": "tool_delta",
    "response.tool_call.completed": "tool_completed",
    "response.tool_call.done": "tool_completed",
    "response.completed": "stream_completed",
}

# Keys that may carry text inside nested content structures
_TEXT_KEYS = ("text", "content", "value", "values", "output_text", "delta", "arguments")

DEFAULT_ERROR_MESSAGE = "Upstream AI response failed"


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    kind: Literal["error"] = "error"


@dataclass(frozen=True)
class TextDeltaEvent:
    delta: str
    kind: Literal["text_delta"] = "text_delta"


@dataclass(frozen=True)
class TextDoneEvent:
    text: str | None
    kind: Literal["text_done"] = "text_done"


@dataclass(frozen=True)
class ToolDeltaEvent:
    call_id: str | None
    name: str | None = None
    arguments: str | None = None
    response_id: str | None = None
    kind: Literal["tool_delta"] = "tool_delta"


@dataclass(frozen=True)
class ToolCompletedEvent:
    call_id: str | None
    name: str | None = None
    arguments: str | None = None
    response_id: str | None = None
    kind: Literal["tool_completed"] = "tool_completed"


@dataclass(frozen=True)
class StreamCompletedEvent:
    model: str | None = None
    usage: dict[str, Any] | None = None
    output_text: str | None = None
    kind: Literal["stream_completed"] = "stream_completed"


UpstreamEvent = (
    ErrorEvent
    | TextDeltaEvent
    | TextDoneEvent
    | ToolDeltaEvent
    | ToolCompletedEvent
    | StreamCompletedEvent
)


def extract_text(source: Any) -> str | None:
    """Flatten a text-bearing value into a single string.

    Plain strings are returned as-is; numbers and booleans are stringified;
    lists are joined; dicts are searched through the usual content keys
    (``text``, ``content``, ``output_text``, ...). Returns ``None`` when no
    text was found.
    """
    segments: list[str] = []

    def visit(value: Any) -> None:
        if value is None:
            return
        if isinstance(value, str):
            if value:
                segments.append(value)
            return
        if isinstance(value, bool):
            segments.append("true" if value else "false")
            return
        if isinstance(value, int | float):
            segments.append(str(value))
            return
        if isinstance(value, list | tuple):
            for entry in value:
                visit(entry)
            return
        if isinstance(value, dict):
            for key in _TEXT_KEYS:
                if key in value:
                    visit(value[key])

    visit(source)
    return "".join(segments) if segments else None


def _first_str(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


def _call_id(payload: dict[str, Any]) -> str | None:
    return _first_str(payload.get("id"), payload.get("tool_call_id"), payload.get("call_id"))


def _response_id(payload: dict[str, Any]) -> str | None:
    response = payload.get("response")
    nested = response.get("id") if isinstance(response, dict) else None
    return _first_str(nested, payload.get("response_id"))


def _arguments(payload: dict[str, Any]) -> str | None:
    raw = payload.get("arguments")
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw or None
    return extract_text(raw)


def parse_upstream_event(payload: Any) -> UpstreamEvent | None:
    """Turn one decoded upstream JSON event into a typed event.

    Args:
        payload: A decoded JSON value from the event stream.

    Returns:
        The typed event, or ``None`` for unknown or malformed payloads.
    """
    if not isinstance(payload, dict):
        return None
    kind = EVENT_KINDS.get(payload.get("type"))  # type: ignore[arg-type]
    if kind is None:
        return None

    if kind == "error":
        error = payload.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        return ErrorEvent(message=_first_str(message) or DEFAULT_ERROR_MESSAGE)

    if kind == "text_delta":
        delta = (
            extract_text(payload.get("delta"))
            or extract_text(payload.get("output_text"))
            or extract_text(payload.get("text"))
        )
        return TextDeltaEvent(delta=delta or "")

    if kind == "text_done":
        response = payload.get("response") if isinstance(payload.get("response"), dict) else {}
        text = (
            extract_text(payload.get("text"))
            or extract_text(payload.get("output_text"))
            or extract_text(response.get("output"))
            or extract_text(response.get("output_text"))
        )
        return TextDoneEvent(text=text)

    if kind == "tool_delta":
        # Tool deltas usually nest the call under ``delta``
        body = payload.get("delta")
        if not isinstance(body, dict):
            body = payload
        return ToolDeltaEvent(
            call_id=_call_id(body),
            name=_first_str(body.get("name")),
            arguments=_arguments(body),
            response_id=_response_id(body) or _response_id(payload),
        )

    if kind == "tool_completed":
        return ToolCompletedEvent(
            call_id=_call_id(payload),
            name=_first_str(payload.get("name")),
            arguments=_arguments(payload),
            response_id=_response_id(payload),
        )

    response = payload.get("response")
    if not isinstance(response, dict):
        return StreamCompletedEvent()
    usage = response.get("usage")
    return StreamCompletedEvent(
        model=_first_str(response.get("model")),
        usage=usage if isinstance(usage, dict) else None,
        output_text=extract_text(response.get("output")) or extract_text(response.get("output_text")),
    )
