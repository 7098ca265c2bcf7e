"""
Pytest configuration and shared fixtures.

Settings are reloaded before app imports so env vars set for the test
run take effect. Time-dependent tests drive a FakeClock instead of
sleeping through a 24 hour lifetime.
"""

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from sparks.config import get_settings
get_settings.cache_clear()

from sparks.models import Coordinates
from sparks.storage import SparkStore

START_MS = 1_700_000_000_000

MANILA = Coordinates(latitude=14.676, longitude=121.0437)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> SparkStore:
    """Fresh store driven by the fake clock."""
    return SparkStore(clock=clock)


@pytest.fixture
def origin() -> Coordinates:
    return MANILA
