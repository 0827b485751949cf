"""Unit-test conftest — settings isolation safety net.

Clears the ``get_settings()`` cache around every unit test so values
read from the environment (or a monkeypatched environment) in one test
never leak into the next.
"""

from __future__ import annotations

import pytest

from src.settings import get_settings


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Start and finish each test with an empty settings cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
