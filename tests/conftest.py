"""Shared test fixtures for the reply service.

Provides common fixtures used across unit tests.
"""

from typing import Any
from unittest.mock import AsyncMock

import pytest
from pydantic import SecretStr

from src.settings import Settings


# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment="testing",
        debug=True,
        openai_api_key=SecretStr("test-api-key"),
        responses_api_url="https://api.openai.test/v1/responses",
        default_model="gpt-4o-mini",
        tool_timeout_seconds=0.5,
        tool_max_retries=0,
        tool_max_concurrency=2,
        tool_retry_delay_seconds=0.01,
    )


# =============================================================================
# COLLABORATORS
# =============================================================================


class EventRecorder:
    """Sink that remembers every (event, data) pair it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def __call__(self, event: str, data: Any) -> None:
        self.events.append((event, data))

    def named(self, event: str) -> list[Any]:
        return [data for name, data in self.events if name == event]

    @property
    def deltas(self) -> list[str]:
        return [data["delta"] for data in self.named("delta")]

    def tool_statuses(self, call_id: str) -> list[str]:
        return [data["status"] for data in self.named("tool_call") if data["id"] == call_id]

    def index_of(self, event: str, **match: Any) -> int:
        for index, (name, data) in enumerate(self.events):
            if name == event and all(data.get(key) == value for key, value in match.items()):
                return index
        return -1


@pytest.fixture
def sink() -> EventRecorder:
    """Client sink that records emitted events."""
    return EventRecorder()


@pytest.fixture
def run_recorder() -> AsyncMock:
    """Run recorder whose ``record`` is an AsyncMock."""
    recorder = AsyncMock()
    recorder.record = AsyncMock(return_value={"id": "run-1"})
    return recorder
