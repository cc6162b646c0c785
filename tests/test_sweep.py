# ==============================================================================
# Tests for SweepProcessor — pipeline/sweep.py
# ==============================================================================
"""
Tests for the ingestion sweep over an in-memory store.

Tests cover:
- Trigger authorization (refusal before any side effect)
- Plays, sessions and day rows written per connection
- Idempotent reruns
- Per-connection isolation for auth, upstream, persistence and invariant errors
- Link day rollups for touched days and join days
- Worker pool and graceful stop
"""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from engagement.base.sources import CredentialProvider, EventSource
from engagement.core.errors import (
    AuthError,
    InternalInvariantError,
    PersistenceError,
    UnauthorizedError,
    UpstreamError,
)
from engagement.core.models import AccessToken, Connection, RawPlay
from engagement.infrastructure.repositories import MemoryEngagementStore
from engagement.pipeline.retention_sweep import deactivate_expired_connections
from engagement.pipeline.sweep import SweepProcessor, authorize_trigger, run_sweep
from engagement.services.metrics import MetricsService


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


NOW = _utc(2024, 1, 15, 18, 0)
JAN_14 = _utc(2024, 1, 13, 23, 0)
JAN_15 = _utc(2024, 1, 14, 23, 0)


# ==============================================================================
# Fakes
# ==============================================================================


class FakeSource(EventSource):
    """Returns canned plays per connection, or raises a canned error."""

    def __init__(self, plays: dict[str, list[RawPlay]] | None = None, errors=None):
        self.plays = plays or {}
        self.errors = errors or {}
        self.calls: list[str] = []

    def fetch_recent_plays(self, connection, token):
        self.calls.append(connection.id)
        if connection.id in self.errors:
            raise self.errors[connection.id]
        return list(self.plays.get(connection.id, []))


class FakeCredentials(CredentialProvider):
    def __init__(self, revoked: set[str] | None = None):
        self.revoked = revoked or set()

    def refresh_token(self, connection):
        if connection.id in self.revoked:
            raise AuthError(f"refresh token revoked for {connection.id}")
        return AccessToken(access_token="token", expires_at=NOW + timedelta(hours=1))


def _connection(connection_id: str, link_id: str = "link1", days_ago: int = 1) -> Connection:
    return Connection(
        id=connection_id,
        link_id=link_id,
        listener_id=f"user-{connection_id}",
        connected_at=NOW - timedelta(days=days_ago),
    )


def _raw(track_id: str, at: datetime, duration_ms: int = 200_000) -> RawPlay:
    return RawPlay(track_id=track_id, played_at=at, duration_ms=duration_ms)


SCENARIO = [
    _raw("a", _utc(2024, 1, 15, 9, 0)),
    _raw("b", _utc(2024, 1, 15, 8, 5)),
    _raw("c", _utc(2024, 1, 15, 8, 0)),
]


@pytest.fixture()
def seeded(memory_state):
    store = MemoryEngagementStore(memory_state)
    store.connections.add(_connection("c1"))
    store.connections.add(_connection("c2"))
    store.connections.set_playlist("link1", {"a", "b"})
    return store


def _processor(memory_state, source, credentials=None, **kwargs) -> SweepProcessor:
    return SweepProcessor(
        store_factory=lambda: MemoryEngagementStore(memory_state),
        event_source=source,
        credentials=credentials or FakeCredentials(),
        clock=lambda: NOW,
        **kwargs,
    )


# ==============================================================================
# Trigger authorization
# ==============================================================================


class TestAuthorizeTrigger:
    def test_matching_key(self):
        authorize_trigger("secret", "secret")

    def test_wrong_key(self):
        with pytest.raises(UnauthorizedError):
            authorize_trigger("guess", "secret")

    def test_missing_key(self):
        with pytest.raises(UnauthorizedError):
            authorize_trigger(None, "secret")

    def test_unconfigured_key_rejects_everything(self):
        with pytest.raises(UnauthorizedError):
            authorize_trigger("", None)

    def test_run_sweep_refuses_without_side_effects(self):
        processor = MagicMock()
        with pytest.raises(UnauthorizedError):
            run_sweep("wrong", "secret", processor)
        processor.run.assert_not_called()


# ==============================================================================
# Happy path
# ==============================================================================


class TestSweep:
    def test_persists_plays_sessions_and_days(self, seeded, memory_state):
        source = FakeSource({"c1": SCENARIO})
        summary = _processor(memory_state, source).run()

        assert summary.connections_processed == 2
        assert summary.errors == 0
        assert summary.plays_added == 3
        assert summary.sessions_derived == 2

        sessions = seeded.sessions.list_for_connection("c1")
        assert [s.track_count for s in sessions] == [2, 1]

        days = seeded.aggregates.list_connection_days(["c1"])
        assert len(days) == 1
        assert days[0].day == JAN_15
        assert days[0].tracks_played == 3
        assert days[0].matched_tracks == 2
        assert days[0].minutes_listened == pytest.approx(10.0)

    def test_marks_connections_polled(self, seeded, memory_state):
        _processor(memory_state, FakeSource({"c1": SCENARIO})).run()
        assert seeded.connections.get("c1").last_polled_at == NOW

    def test_rerun_is_idempotent(self, seeded, memory_state):
        source = FakeSource({"c1": SCENARIO})
        _processor(memory_state, source).run()
        first_days = seeded.aggregates.list_connection_days(["c1"])

        summary = _processor(memory_state, source).run()

        assert summary.plays_added == 0
        assert len(seeded.plays.list_for_connection("c1")) == 3
        assert len(seeded.sessions.list_for_connection("c1")) == 2
        assert seeded.aggregates.list_connection_days(["c1"]) == first_days

    def test_shifted_timestamps_are_deduplicated(self, seeded, memory_state):
        _processor(memory_state, FakeSource({"c1": SCENARIO})).run()
        shifted = [_raw(p.track_id, p.played_at + timedelta(minutes=2)) for p in SCENARIO]

        summary = _processor(memory_state, FakeSource({"c1": shifted})).run()

        assert summary.plays_added == 0

    def test_link_days_for_touched_and_join_days(self, seeded, memory_state):
        summary = _processor(memory_state, FakeSource({"c1": SCENARIO})).run()

        rows = seeded.aggregates.list_link_days("link1", JAN_14, JAN_15 + timedelta(days=1))
        assert summary.link_days_updated == 2
        by_day = {row.day: row for row in rows}
        assert by_day[JAN_15].tracks_played == 2
        assert by_day[JAN_15].active_listeners == 1
        assert by_day[JAN_15].connections_new == 0
        assert by_day[JAN_14].connections_new == 2
        assert by_day[JAN_14].tracks_played == 0

    def test_daily_series_agrees_with_last_7_days(self, seeded, memory_state):
        _processor(memory_state, FakeSource({"c1": SCENARIO})).run()
        service = MetricsService(seeded)

        series = service.get_link_daily_metrics("link1", days=7, now=NOW)
        window = service.get_link_metrics("link1", now=NOW).last_7_days

        assert sum(point.connections_new for point in series) == window.new_connections == 2
        assert sum(point.tracks_played for point in series) == window.tracks_played

    def test_skips_connections_outside_retention(self, seeded, memory_state):
        seeded.connections.add(_connection("old", days_ago=60))
        source = FakeSource()
        _processor(memory_state, source).run()
        assert "old" not in source.calls

    def test_empty_upstream(self, seeded, memory_state):
        summary = _processor(memory_state, FakeSource()).run()
        assert summary.connections_processed == 2
        assert summary.plays_added == 0
        assert summary.link_days_updated == 1


# ==============================================================================
# Per-connection isolation
# ==============================================================================


class TestIsolation:
    def test_auth_error_skips_only_that_connection(self, seeded, memory_state):
        source = FakeSource({"c1": SCENARIO, "c2": SCENARIO})
        summary = _processor(memory_state, source, FakeCredentials(revoked={"c1"})).run()

        assert summary.errors == 1
        assert summary.connections_processed == 1
        assert "c1" not in source.calls
        assert seeded.plays.list_for_connection("c1") == []
        assert len(seeded.plays.list_for_connection("c2")) == 3

    def test_upstream_error_is_isolated(self, seeded, memory_state, caplog):
        source = FakeSource({"c2": SCENARIO}, errors={"c1": UpstreamError("timed out")})
        with caplog.at_level(logging.ERROR):
            summary = _processor(memory_state, source).run()

        assert summary.errors == 1
        assert summary.connections_processed == 1
        assert "c1" in caplog.text

    def test_persistence_error_rolls_back_connection(self, seeded, memory_state):
        original_upsert = seeded.aggregates.upsert_connection_days

        class FailingStore(MemoryEngagementStore):
            def __init__(self, state):
                super().__init__(state)
                self.aggregates.upsert_connection_days = self._fail

            def _fail(self, rows):
                if rows and rows[0].connection_id == "c1":
                    raise PersistenceError("disk full")
                return original_upsert(rows)

        processor = SweepProcessor(
            store_factory=lambda: FailingStore(memory_state),
            event_source=FakeSource({"c1": SCENARIO, "c2": SCENARIO}),
            credentials=FakeCredentials(),
            clock=lambda: NOW,
        )
        summary = processor.run()

        assert summary.errors == 1
        assert seeded.plays.list_for_connection("c1") == []
        assert seeded.sessions.list_for_connection("c1") == []
        assert len(seeded.plays.list_for_connection("c2")) == 3

    def test_invariant_error_is_logged_loudly(self, seeded, memory_state, caplog):
        deriver = MagicMock()
        deriver.derive.side_effect = InternalInvariantError("empty group")
        processor = _processor(memory_state, FakeSource({"c1": SCENARIO}), deriver=deriver)

        with caplog.at_level(logging.ERROR):
            summary = processor.run()

        assert summary.errors == 2
        assert any(r.exc_info for r in caplog.records)

    def test_unexpected_error_is_isolated(self, seeded, memory_state):
        source = FakeSource({"c2": SCENARIO}, errors={"c1": ValueError("bad payload")})
        summary = _processor(memory_state, source).run()
        assert summary.errors == 1
        assert summary.connections_processed == 1


# ==============================================================================
# Concurrency and stop
# ==============================================================================


class TestWorkers:
    def test_worker_pool_matches_sequential(self, memory_state):
        store = MemoryEngagementStore(memory_state)
        plays = {}
        for i in range(6):
            store.connections.add(_connection(f"c{i}"))
            plays[f"c{i}"] = SCENARIO
        store.connections.set_playlist("link1", {"a"})

        summary = _processor(memory_state, FakeSource(plays), workers=3).run()

        assert summary.connections_processed == 6
        assert summary.plays_added == 18
        rows = store.aggregates.list_link_days("link1", JAN_15, JAN_15 + timedelta(days=1))
        assert rows[0].active_listeners == 6
        assert rows[0].tracks_played == 6

    def test_stop_request_skips_remaining(self, seeded, memory_state):
        source = FakeSource()
        processor = _processor(memory_state, source, should_stop=lambda: len(source.calls) >= 1)
        summary = processor.run()

        assert summary.connections_processed == 1
        assert summary.connections_skipped == 1


# ==============================================================================
# Retention sweep
# ==============================================================================


class TestRetentionSweep:
    def test_deactivates_expired_connections(self, seeded):
        seeded.connections.add(_connection("old", days_ago=50))

        result = deactivate_expired_connections(seeded, retention_days=45, now=NOW)

        assert result.processed == 1
        assert result.cutoff == NOW - timedelta(days=45)
        old = seeded.connections.get("old")
        assert old.is_active is False
        assert old.ended_at == NOW
        assert seeded.connections.get("c1").is_active is True

    def test_rerun_processes_nothing(self, seeded):
        seeded.connections.add(_connection("old", days_ago=50))
        deactivate_expired_connections(seeded, now=NOW)
        assert deactivate_expired_connections(seeded, now=NOW).processed == 0
