# ==============================================================================
# Metrics Service
# ==============================================================================
"""
Read API over the engagement store.

Provides:
- get_link_metrics: headline totals, last 7 days and the recent feed
- get_user_metrics: per-connection audience metrics
- get_link_daily_metrics: zero-filled daily series
- get_cohort_retention: cohort retention curves

Every method is a pure query: it loads rows through the repositories and
hands them to the aggregation functions in engagement.core.
"""

import logging
from datetime import datetime

from engagement.base.repositories import EngagementStore
from engagement.core.aggregation import (
    compute_link_metrics,
    compute_user_metrics,
    fill_daily_metrics,
)
from engagement.core.day_bucket import DayBucketer
from engagement.core.models import CohortRetention, DailyMetric, LinkMetrics, UserMetrics
from engagement.core.retention import compute_cohort_retention

logger = logging.getLogger(__name__)

DEFAULT_SERIES_DAYS = 30


class MetricsService:
    """Computes read-side metrics for links and connections."""

    def __init__(
        self,
        store: EngagementStore,
        bucketer: DayBucketer | None = None,
        retention_days: int = 45,
    ):
        """
        Initialize the service.

        Args:
            store: Connected engagement store
            bucketer: Day-key helper (default: Europe/Copenhagen)
            retention_days: Window after joining in which a connection is active
        """
        self._store = store
        self._bucketer = bucketer or DayBucketer()
        self._retention_days = retention_days

    def get_link_metrics(self, link_id: str, now: datetime | None = None) -> LinkMetrics:
        connections = self._store.connections.list_for_link(link_id)
        ids = [c.id for c in connections]
        plays = self._store.plays.list_for_connections(ids)
        connection_days = self._store.aggregates.list_connection_days(ids)
        logger.debug(
            "Link %s: %d connections, %d plays, %d day rows",
            link_id,
            len(connections),
            len(plays),
            len(connection_days),
        )
        return compute_link_metrics(
            connections,
            plays,
            connection_days,
            self._bucketer,
            retention_days=self._retention_days,
            now=now,
        )

    def get_user_metrics(self, connection_id: str) -> UserMetrics:
        plays = self._store.plays.list_for_connection(connection_id)
        sessions = self._store.sessions.list_for_connection(connection_id)
        return compute_user_metrics(plays, sessions)

    def get_link_daily_metrics(
        self,
        link_id: str,
        days: int = DEFAULT_SERIES_DAYS,
        now: datetime | None = None,
    ) -> list[DailyMetric]:
        """
        Daily series for a link over the last ``days`` day keys.

        Returns:
            One DailyMetric per day key, oldest first; days without a stored
            aggregate are zero-filled
        """
        keys = self._bucketer.last_n_day_keys(days, now)
        if not keys:
            return []
        start, end = keys[0], self._bucketer.next_day_key(keys[-1])
        rows = self._store.aggregates.list_link_days(link_id, start, end)
        return fill_daily_metrics(keys, rows)

    def get_cohort_retention(
        self,
        link_id: str,
        days: int = DEFAULT_SERIES_DAYS,
        now: datetime | None = None,
    ) -> list[CohortRetention]:
        """
        Retention curves for the link's cohorts within the last ``days`` day keys.

        Returns:
            One CohortRetention per join day, oldest first
        """
        keys = self._bucketer.last_n_day_keys(days, now)
        if not keys:
            return []
        connections = self._store.connections.list_for_link(link_id)
        connection_days = self._store.aggregates.list_connection_days(
            [c.id for c in connections],
            start=keys[0],
            end=self._bucketer.next_day_key(keys[-1]),
        )
        return compute_cohort_retention(
            connections, connection_days, self._bucketer, days=days, now=now
        )
