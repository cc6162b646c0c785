# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no storage or network dependencies.

This module contains:
- Domain models (PlayEvent, ListeningSession, day aggregates, read shapes)
- Play deduplication, session derivation and day bucketing
- Aggregation and cohort retention math

All code here is storage-agnostic and easily unit-testable.
"""

from engagement.core.day_bucket import DayBucketer, day_key, ensure_utc
from engagement.core.dedup import PlayDeduplicator
from engagement.core.errors import (
    AuthError,
    EngagementError,
    InternalInvariantError,
    PersistenceError,
    UnauthorizedError,
    UpstreamError,
)
from engagement.core.models import (
    AccessToken,
    CohortRetention,
    Connection,
    ConnectionDayAggregate,
    DailyMetric,
    LinkDayAggregate,
    LinkMetrics,
    ListeningSession,
    PlayEvent,
    RawPlay,
    SweepSummary,
    UserMetrics,
)
from engagement.core.session_processor import SessionDeriver, play_minutes

__all__ = [
    "AccessToken",
    "AuthError",
    "CohortRetention",
    "Connection",
    "ConnectionDayAggregate",
    "DailyMetric",
    "DayBucketer",
    "EngagementError",
    "InternalInvariantError",
    "LinkDayAggregate",
    "LinkMetrics",
    "ListeningSession",
    "PersistenceError",
    "PlayDeduplicator",
    "PlayEvent",
    "RawPlay",
    "SessionDeriver",
    "SweepSummary",
    "UnauthorizedError",
    "UpstreamError",
    "UserMetrics",
    "day_key",
    "ensure_utc",
    "play_minutes",
]
