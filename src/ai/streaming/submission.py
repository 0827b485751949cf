"""Tool output submission back to the Responses API.

After a tool call succeeds, the upstream response is told about the
output so the model can continue from it. This is best-effort: any
failure is logged and the reply carries on.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from src.ai.streaming.models import ToolResult

logger = logging.getLogger(__name__)


def serialize_tool_output(value: object) -> str:
    """Render a tool result as the string the Responses API expects."""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class ToolOutputSubmitter:
    """POSTs tool outputs to ``{responses_api_url}/{response_id}/tool_outputs``.

    The HTTP client is injected so tests can swap in ``httpx.MockTransport``
    and the reply driver can share one connection pool.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        responses_api_url: str,
        api_key: str | None,
    ) -> None:
        self._client = client
        self._responses_api_url = responses_api_url.rstrip("/")
        self._api_key = api_key or None

    @property
    def enabled(self) -> bool:
        return self._api_key is not None

    def url_for(self, response_id: str) -> str:
        return f"{self._responses_api_url}/{response_id}/tool_outputs"

    async def submit(self, response_id: str, tool: ToolResult) -> bool:
        """Submit one tool output.

        Returns:
            True when the upstream accepted the output, False otherwise
            (including when no API key is configured).
        """
        if not self.enabled:
            return False

        body = {
            "tool_outputs": [
                {
                    "tool_call_id": tool.call_id,
                    "output": serialize_tool_output(tool.result),
                },
            ],
        }
        try:
            response = await self._client.post(
                self.url_for(response_id),
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except Exception as e:
            # Includes RuntimeError from a client closed while tools still run
            logger.warning(
                "Tool output submission failed for response %s, call %s: %s",
                response_id,
                tool.call_id,
                e,
            )
            return False

        if response.is_error:
            logger.warning(
                "Tool output submission rejected for response %s, call %s: HTTP %s %s",
                response_id,
                tool.call_id,
                response.status_code,
                response.text[:200],
            )
            return False
        return True
