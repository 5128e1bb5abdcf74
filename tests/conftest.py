"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from keycoach.engine import EngineConfig, WeaknessEngine  # noqa: E402

# 2023-11-14 22:13:20 UTC
BASE_TIME_MS = 1_700_000_000_000.0


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Engine flow tests")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, start: float = BASE_TIME_MS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def rng():
    """Seeded random source for reproducible sampling."""
    return random.Random(42)


@pytest.fixture
def clock():
    """Fixed clock starting at BASE_TIME_MS."""
    return FakeClock()


@pytest.fixture
def engine_factory(clock):
    """Build engines sharing the test clock."""

    def build(seed: int = 7, **config) -> WeaknessEngine:
        return WeaknessEngine(
            config=EngineConfig(**config),
            rng=random.Random(seed),
            clock=clock,
        )

    return build


@pytest.fixture
def engine(engine_factory):
    """Fresh engine with default configuration."""
    return engine_factory()


def make_event(expected, timestamp, is_correct=True, **extra):
    """Keystroke event dict in the capture loop's camelCase shape."""
    event = {
        "key": expected if is_correct else "?",
        "expected": expected,
        "timestamp": timestamp,
        "isCorrect": is_correct,
    }
    event.update(extra)
    return event


@pytest.fixture(name="make_event")
def make_event_fixture():
    return make_event
