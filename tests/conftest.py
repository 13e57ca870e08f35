"""Common test fixtures for fullscore."""

import pytest

from fullscore.settings import Settings
from fullscore.slot_store import MemorySlotStore
from fullscore.transport import MemoryTransport
from tests.support.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def score_settings() -> Settings:
    """Settings independent of the environment and any .env file."""
    return Settings(_env_file=None, origin="https://example.com", store_path="")


@pytest.fixture
def store(clock: FakeClock) -> MemorySlotStore:
    return MemorySlotStore(clock=clock)


@pytest.fixture
def transport() -> MemoryTransport:
    return MemoryTransport()
