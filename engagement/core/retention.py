# ==============================================================================
# Cohort Retention - Pure Domain Logic
# ==============================================================================
"""
Day-by-day retention curves for join-day cohorts.

A cohort is the set of connections whose join instant falls on the same day
key. A member counts as retained on a day when it has at least one day
aggregate row for that day. Nothing here is persisted.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime

from engagement.core.day_bucket import DayBucketer
from engagement.core.models import (
    CohortRetention,
    Connection,
    ConnectionDayAggregate,
    RetentionDay,
)


def retention_fraction(active: int, size: int) -> float:
    """Retained share of a cohort, 0.0 for an empty cohort."""
    if size <= 0:
        return 0.0
    return min(max(active / size, 0.0), 1.0)


def compute_cohort_retention(
    connections: Sequence[Connection],
    connection_days: Sequence[ConnectionDayAggregate],
    bucketer: DayBucketer,
    days: int = 30,
    now: datetime | None = None,
) -> list[CohortRetention]:
    """
    Retention curves for cohorts that joined within the lookback window.

    Args:
        connections: Candidate connections (typically one link's)
        connection_days: Day rows of those connections
        bucketer: Day-key helper for the audience timezone
        days: Lookback window length in days
        now: Clock override

    Returns:
        One CohortRetention per cohort, oldest cohort first, each with one
        RetentionDay per day key in the window
    """
    keys = bucketer.last_n_day_keys(days, now)
    window = set(keys)

    cohorts: dict[datetime, list[Connection]] = defaultdict(list)
    for connection in connections:
        cohort_key = bucketer.day_key(connection.connected_at)
        if cohort_key in window:
            cohorts[cohort_key].append(connection)

    active_days: dict[str, set[datetime]] = defaultdict(set)
    for row in connection_days:
        active_days[row.connection_id].add(row.day)

    results = []
    for cohort_key in sorted(cohorts):
        members = cohorts[cohort_key]
        curve = []
        for key in keys:
            active = sum(1 for c in members if key in active_days[c.id])
            curve.append(
                RetentionDay(
                    date=bucketer.format_day(key),
                    active_users=active,
                    retention_rate=retention_fraction(active, len(members)),
                )
            )
        results.append(
            CohortRetention(
                cohort_date=bucketer.format_day(cohort_key),
                total_users=len(members),
                retention_by_day=curve,
            )
        )
    return results
