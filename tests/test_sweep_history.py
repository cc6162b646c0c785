# ==============================================================================
# Tests for SweepHistory — sweep_history.py
# ==============================================================================
"""
Tests for sweep run history stored in Valkey (fakeredis).
"""

from datetime import datetime, timedelta, timezone

from engagement.core.models import SweepSummary
from engagement.infrastructure.sweep_history import INDEX_KEY, SweepHistory


def _summary(minutes_ago: int, processed: int = 1) -> SweepSummary:
    started = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(minutes=minutes_ago)
    return SweepSummary(
        started_at=started,
        finished_at=started + timedelta(seconds=30),
        connections_processed=processed,
        plays_added=processed * 10,
    )


class TestSweepHistory:
    def test_empty_history(self, fake_cache):
        history = SweepHistory(fake_cache)
        assert history.history() == []
        assert history.last() is None

    def test_record_and_read_back(self, fake_cache):
        history = SweepHistory(fake_cache)
        summary = _summary(5, processed=3)

        history.record(summary)

        assert history.last() == summary
        assert history.last().duration_seconds == 30.0

    def test_newest_first_with_limit(self, fake_cache):
        history = SweepHistory(fake_cache)
        for minutes_ago, processed in [(30, 1), (20, 2), (10, 3)]:
            history.record(_summary(minutes_ago, processed))

        runs = history.history(limit=2)

        assert [r.connections_processed for r in runs] == [3, 2]

    def test_zero_limit(self, fake_cache):
        history = SweepHistory(fake_cache)
        history.record(_summary(1))
        assert history.history(limit=0) == []

    def test_runs_are_written_with_ttl(self, fake_cache, fake_redis):
        SweepHistory(fake_cache, ttl_hours=1).record(_summary(1))

        key = fake_redis.zrange(INDEX_KEY, 0, -1)[0]
        assert 0 < fake_redis.ttl(key) <= 3600

    def test_old_index_entries_are_trimmed(self, fake_cache, fake_redis):
        history = SweepHistory(fake_cache, ttl_hours=1)
        history.record(_summary(120))
        history.record(_summary(5))

        assert fake_redis.zcard(INDEX_KEY) == 1

    def test_expired_run_keys_are_skipped(self, fake_cache, fake_redis):
        history = SweepHistory(fake_cache)
        history.record(_summary(10, processed=1))
        history.record(_summary(5, processed=2))

        newest = fake_redis.zrevrange(INDEX_KEY, 0, 0)[0]
        fake_redis.delete(newest)

        assert [r.connections_processed for r in history.history()] == [1]
