"""
Shared fixtures
"""

from datetime import datetime, timedelta, timezone

import pytest

from config.app_config import HandoffConfig
from infrastructure.store import InMemoryDocumentStore


class FakeClock:
    """Server clock advancing one second per timestamp"""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryDocumentStore(clock=FakeClock())


@pytest.fixture
def handoff_config():
    # Long interval: tests drive polling through poll_once()
    return HandoffConfig(poll_interval=60.0)
