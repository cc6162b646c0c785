# ==============================================================================
# Tests for MetricsService — services/metrics.py
# ==============================================================================
"""
Tests for the read API over an in-memory store.
"""

from datetime import datetime, timedelta, timezone

from engagement.core.models import Connection, LinkDayAggregate, PlayEvent
from engagement.services.metrics import MetricsService


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


NOW = _utc(2024, 1, 15, 12, 0)
JAN_15 = _utc(2024, 1, 14, 23, 0)


def _seed(store, deriver):
    store.connections.add(
        Connection(id="c1", link_id="link1", listener_id="u1", connected_at=_utc(2024, 1, 14, 9, 0))
    )
    store.connections.add(
        Connection(id="c2", link_id="link2", listener_id="u2", connected_at=_utc(2024, 1, 14, 9, 0))
    )
    plays = [
        PlayEvent(
            connection_id="c1",
            track_id=f"t{i}",
            played_at=_utc(2024, 1, 15, 8, 0) + timedelta(minutes=4 * i),
            duration_ms=240_000,
            matched_playlist=True,
        )
        for i in range(3)
    ]
    store.plays.add(plays)
    store.sessions.replace("c1", deriver.derive(plays))


class TestMetricsService:
    def test_link_metrics(self, store, bucketer, deriver):
        _seed(store, deriver)
        metrics = MetricsService(store, bucketer).get_link_metrics("link1", now=NOW)

        assert metrics.total_connections == 1
        assert metrics.total_tracks_played == 3
        assert metrics.total_minutes_listened == 12
        assert [r.id for r in metrics.recent_connections] == ["c1"]

    def test_unknown_link_is_empty(self, store, bucketer):
        metrics = MetricsService(store, bucketer).get_link_metrics("missing", now=NOW)
        assert metrics.total_connections == 0

    def test_user_metrics(self, store, bucketer, deriver):
        _seed(store, deriver)
        metrics = MetricsService(store, bucketer).get_user_metrics("c1")

        assert metrics.total_tracks_played == 3
        assert metrics.total_sessions == 1
        assert metrics.last_active == _utc(2024, 1, 15, 8, 8)

    def test_daily_series_zero_filled(self, store, bucketer):
        store.aggregates.upsert_link_days(
            [LinkDayAggregate(link_id="link1", day=JAN_15, tracks_played=7, minutes_listened=20.4)]
        )
        series = MetricsService(store, bucketer).get_link_daily_metrics("link1", days=30, now=NOW)

        assert len(series) == 30
        assert series[-1].day == JAN_15
        assert series[-1].tracks_played == 7
        assert series[-1].minutes_listened == 20
        assert all(p.tracks_played == 0 for p in series[:-1])

    def test_daily_series_empty_window(self, store, bucketer):
        assert MetricsService(store, bucketer).get_link_daily_metrics("link1", days=0) == []

    def test_cohort_retention_scoped_to_link(self, store, bucketer, deriver):
        _seed(store, deriver)
        cohorts = MetricsService(store, bucketer).get_cohort_retention("link1", days=7, now=NOW)

        assert len(cohorts) == 1
        assert cohorts[0].cohort_date == "2024-01-14"
        assert cohorts[0].total_users == 1
