# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- fakeredis-backed ValkeyCache instances
- An in-memory engagement store, clean per test
- A Copenhagen day bucketer and a default session deriver
- Isolated settings (no .env or host environment leaks into tests)
"""

import fakeredis
import pytest

from engagement.core.day_bucket import DayBucketer
from engagement.core.session_processor import SessionDeriver
from engagement.infrastructure.cache import ValkeyCache
from engagement.infrastructure.repositories import MemoryEngagementStore, MemoryState
from engagement.utils.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Clear cached settings and any sweep key from the host environment."""
    monkeypatch.delenv("SWEEP_CRON_KEY", raising=False)
    monkeypatch.delenv("SWEEP_TRIGGER_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real ValkeyCache behavior.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def fake_cache(fake_redis):
    """A ValkeyCache wrapping the fakeredis client."""
    return ValkeyCache(client=fake_redis)


@pytest.fixture()
def memory_state():
    return MemoryState()


@pytest.fixture()
def store(memory_state):
    """In-memory store over the per-test state."""
    return MemoryEngagementStore(memory_state)


@pytest.fixture()
def bucketer():
    return DayBucketer("Europe/Copenhagen")


@pytest.fixture()
def deriver():
    return SessionDeriver(gap_minutes=30, super_listener_threshold=15)
