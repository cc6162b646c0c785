# ==============================================================================
# Tests for Cohort Retention — retention.py
# ==============================================================================
"""
Tests for cohort grouping and retention fractions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from engagement.core.models import Connection, ConnectionDayAggregate
from engagement.core.retention import compute_cohort_retention, retention_fraction


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


NOW = _utc(2024, 1, 15, 12, 0)
JAN_14 = _utc(2024, 1, 13, 23, 0)
JAN_15 = _utc(2024, 1, 14, 23, 0)


def _connection(connection_id: str, connected_at: datetime) -> Connection:
    return Connection(
        id=connection_id, link_id="link1", listener_id=connection_id, connected_at=connected_at
    )


def _active(connection_id: str, day: datetime) -> ConnectionDayAggregate:
    return ConnectionDayAggregate(connection_id=connection_id, day=day, tracks_played=1)


class TestRetentionFraction:
    def test_empty_cohort_is_zero(self):
        assert retention_fraction(0, 0) == 0.0
        assert retention_fraction(3, 0) == 0.0

    @pytest.mark.parametrize("active, size", [(0, 4), (1, 4), (4, 4), (2, 3)])
    def test_bounded(self, active, size):
        assert 0.0 <= retention_fraction(active, size) <= 1.0

    def test_clamped_when_active_exceeds_size(self):
        assert retention_fraction(5, 4) == 1.0


class TestCohortRetention:
    def test_cohorts_by_join_day(self, bucketer):
        connections = [
            _connection("a", _utc(2024, 1, 14, 9, 0)),
            _connection("b", _utc(2024, 1, 14, 20, 0)),
            _connection("c", _utc(2024, 1, 15, 8, 0)),
        ]
        days = [_active("a", JAN_14), _active("b", JAN_14), _active("a", JAN_15)]

        cohorts = compute_cohort_retention(connections, days, bucketer, days=3, now=NOW)

        assert [c.cohort_date for c in cohorts] == ["2024-01-14", "2024-01-15"]
        first = cohorts[0]
        assert first.total_users == 2
        assert [d.date for d in first.retention_by_day] == [
            "2024-01-13",
            "2024-01-14",
            "2024-01-15",
        ]
        assert [d.active_users for d in first.retention_by_day] == [0, 2, 1]
        assert [d.retention_rate for d in first.retention_by_day] == [0.0, 1.0, 0.5]

        second = cohorts[1]
        assert second.total_users == 1
        assert second.retention_by_day[-1].retention_rate == 0.0

    def test_late_utc_join_belongs_to_next_local_day(self, bucketer):
        """23:30 UTC on the 14th is 00:30 local on the 15th."""
        connections = [_connection("a", _utc(2024, 1, 14, 23, 30))]
        cohorts = compute_cohort_retention(connections, [], bucketer, days=2, now=NOW)
        assert [c.cohort_date for c in cohorts] == ["2024-01-15"]

    def test_plays_before_join_day_count_as_active(self, bucketer):
        """The recently-played feed can return listening from before the join."""
        jan_13 = _utc(2024, 1, 12, 23, 0)
        connections = [_connection("a", _utc(2024, 1, 14, 9, 0))]
        days = [_active("a", jan_13), _active("a", JAN_14)]

        cohorts = compute_cohort_retention(connections, days, bucketer, days=3, now=NOW)

        assert [d.active_users for d in cohorts[0].retention_by_day] == [1, 1, 0]

    def test_cohorts_outside_window_are_excluded(self, bucketer):
        connections = [_connection("old", NOW - timedelta(days=40))]
        assert compute_cohort_retention(connections, [], bucketer, days=30, now=NOW) == []

    def test_zero_day_window(self, bucketer):
        connections = [_connection("a", NOW)]
        assert compute_cohort_retention(connections, [], bucketer, days=0, now=NOW) == []

    def test_every_fraction_in_unit_interval(self, bucketer):
        connections = [_connection(f"c{i}", NOW - timedelta(days=i)) for i in range(10)]
        days = [
            _active(f"c{i}", bucketer.day_key(NOW - timedelta(days=j)))
            for i in range(10)
            for j in range(0, i + 1, 2)
        ]
        for cohort in compute_cohort_retention(connections, days, bucketer, days=14, now=NOW):
            for day in cohort.retention_by_day:
                assert 0.0 <= day.retention_rate <= 1.0
