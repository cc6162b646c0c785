# ==============================================================================
# Daily & Link Aggregation - Pure Domain Logic
# ==============================================================================
"""
Aggregation math for day rows and link-level rollups.

Every function here takes plain model lists and returns new models; nothing
reads or writes storage. Recomputing from the same inputs always gives the
same output, which is what keeps the upsert-overwrite write path idempotent.

Minute figures stay fractional (or raw milliseconds) until they are reported;
rounding happens once, half-up, at the reporting edge.
"""

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone

from engagement.core.day_bucket import DayBucketer
from engagement.core.models import (
    Connection,
    ConnectionDayAggregate,
    DailyMetric,
    LinkDayAggregate,
    LinkMetrics,
    ListeningSession,
    PlayEvent,
    RecentConnection,
    UserMetrics,
    WindowMetrics,
)
from engagement.core.session_processor import SessionDeriver, play_minutes

RECENT_WINDOW_DAYS = 7
RECENT_FEED_LIMIT = 10


def round_minutes(minutes: float) -> int:
    """Round a minute figure half-up for reporting."""
    return int(math.floor(minutes + 0.5))


def round_ms_to_minutes(total_ms: int) -> int:
    """Convert accumulated milliseconds to whole reported minutes."""
    return round_minutes(total_ms / 60000)


def plays_in_day(
    plays: Iterable[PlayEvent], key: datetime, bucketer: DayBucketer
) -> list[PlayEvent]:
    """Plays whose timestamp falls inside the day starting at ``key``."""
    start, end = bucketer.day_bounds(key)
    return [p for p in plays if start <= p.played_at < end]


def touched_day_keys(plays: Iterable[PlayEvent], bucketer: DayBucketer) -> list[datetime]:
    """Sorted distinct day keys covered by a set of plays."""
    return sorted({bucketer.day_key(p.played_at) for p in plays})


# ==============================================================================
# Day Rows
# ==============================================================================


def compute_connection_day(
    connection_id: str,
    key: datetime,
    plays: Sequence[PlayEvent],
    bucketer: DayBucketer,
    deriver: SessionDeriver,
) -> ConnectionDayAggregate:
    """
    Recompute one connection's aggregate for one day from scratch.

    Args:
        connection_id: Connection being aggregated
        key: Day key
        plays: The connection's plays (any range; filtered to the day here)
        bucketer: Day-key helper for the audience timezone
        deriver: Session deriver used for super-listener classification

    Returns:
        A complete row, ready to overwrite any stored value
    """
    day_plays = [
        p for p in plays_in_day(plays, key, bucketer) if p.connection_id == connection_id
    ]
    return ConnectionDayAggregate(
        connection_id=connection_id,
        day=bucketer.day_key(key),
        tracks_played=len(day_plays),
        matched_tracks=sum(1 for p in day_plays if p.matched_playlist),
        minutes_listened=sum(play_minutes(p.duration_ms) for p in day_plays),
        super_listener_day=deriver.is_super_listener_day(day_plays),
    )


def compute_link_day(
    link_id: str,
    key: datetime,
    connections: Sequence[Connection],
    plays: Sequence[PlayEvent],
    connection_days: Sequence[ConnectionDayAggregate],
    bucketer: DayBucketer,
) -> LinkDayAggregate:
    """
    Recompute one link's aggregate for one day.

    Only matched-playlist plays count towards listeners, tracks and minutes.
    """
    start, end = bucketer.day_bounds(key)
    member_ids = {c.id for c in connections if c.link_id == link_id}

    matched = [
        p
        for p in plays
        if p.connection_id in member_ids and p.matched_playlist and start <= p.played_at < end
    ]
    super_rows = [
        row
        for row in connection_days
        if row.connection_id in member_ids and row.day == start and row.super_listener_day
    ]

    return LinkDayAggregate(
        link_id=link_id,
        day=start,
        connections_new=sum(
            1 for c in connections if c.id in member_ids and start <= c.connected_at < end
        ),
        active_listeners=len({p.connection_id for p in matched}),
        tracks_played=len(matched),
        minutes_listened=sum(play_minutes(p.duration_ms) for p in matched),
        super_listeners=len(super_rows),
    )


# ==============================================================================
# Link Rollups
# ==============================================================================


def is_currently_active(connection: Connection, now: datetime, retention_days: int) -> bool:
    """Active flag set and still inside the retention window."""
    cutoff = now - timedelta(days=retention_days)
    return connection.is_active and connection.connected_at >= cutoff


def compute_window_metrics(
    connections: Sequence[Connection],
    plays: Sequence[PlayEvent],
    connection_days: Sequence[ConnectionDayAggregate],
    start: datetime,
    end: datetime,
) -> WindowMetrics:
    """Link activity inside the half-open range [start, end)."""
    matched = [p for p in plays if p.matched_playlist and start <= p.played_at < end]
    return WindowMetrics(
        new_connections=sum(1 for c in connections if start <= c.connected_at < end),
        active_listeners=len({p.connection_id for p in matched}),
        tracks_played=len(matched),
        super_listeners=sum(
            1 for row in connection_days if row.super_listener_day and start <= row.day < end
        ),
    )


def compute_recent_connections(
    connections: Sequence[Connection],
    plays: Sequence[PlayEvent],
    start: datetime,
    end: datetime,
    limit: int = RECENT_FEED_LIMIT,
) -> list[RecentConnection]:
    """Connections that joined in [start, end), newest first, capped at ``limit``."""
    recent = sorted(
        (c for c in connections if start <= c.connected_at < end),
        key=lambda c: c.connected_at,
        reverse=True,
    )[:limit]

    feed = []
    for connection in recent:
        own = [p for p in plays if p.connection_id == connection.id]
        feed.append(
            RecentConnection(
                id=connection.id,
                display_name=connection.display_name,
                connected_at=connection.connected_at,
                total_tracks_played=len(own),
                total_minutes=round_ms_to_minutes(sum(p.duration_ms for p in own)),
            )
        )
    return feed


def compute_link_metrics(
    connections: Sequence[Connection],
    plays: Sequence[PlayEvent],
    connection_days: Sequence[ConnectionDayAggregate],
    bucketer: DayBucketer,
    retention_days: int = 45,
    now: datetime | None = None,
) -> LinkMetrics:
    """
    Headline metrics for one link.

    Args:
        connections: Every connection ever linked to the link
        plays: All plays of those connections
        connection_days: All day rows of those connections
        bucketer: Day-key helper for the audience timezone
        retention_days: Window after joining in which a connection counts as active
        now: Clock override

    Returns:
        LinkMetrics with all-time totals, the 7-day window and the recent feed
    """
    now = now or datetime.now(timezone.utc)
    matched = [p for p in plays if p.matched_playlist]
    super_connections = {row.connection_id for row in connection_days if row.super_listener_day}
    start, end = bucketer.window_bounds(RECENT_WINDOW_DAYS, now)

    return LinkMetrics(
        total_connections=len(connections),
        total_active_listeners=sum(
            1 for c in connections if is_currently_active(c, now, retention_days)
        ),
        total_tracks_played=len(matched),
        total_minutes_listened=round_ms_to_minutes(sum(p.duration_ms for p in matched)),
        total_super_listeners=len(super_connections),
        last_7_days=compute_window_metrics(connections, plays, connection_days, start, end),
        recent_connections=compute_recent_connections(connections, plays, start, end),
    )


def compute_user_metrics(
    plays: Sequence[PlayEvent], sessions: Sequence[ListeningSession]
) -> UserMetrics:
    """Per-connection metrics: matched plays, sessions and last activity."""
    matched = [p for p in plays if p.matched_playlist]
    return UserMetrics(
        total_tracks_played=len(matched),
        total_minutes_listened=round_ms_to_minutes(sum(p.duration_ms for p in matched)),
        total_sessions=len(sessions),
        super_listener_count=sum(1 for s in sessions if s.super_listener_hit),
        last_active=max((p.played_at for p in matched), default=None),
    )


def fill_daily_metrics(
    keys: Sequence[datetime], link_days: Iterable[LinkDayAggregate]
) -> list[DailyMetric]:
    """One point per day key; days without a stored row are zero-filled."""
    by_day = {row.day: row for row in link_days}
    series = []
    for key in keys:
        row = by_day.get(key)
        if row is None:
            series.append(DailyMetric(day=key))
            continue
        series.append(
            DailyMetric(
                day=key,
                connections_new=row.connections_new,
                active_listeners=row.active_listeners,
                tracks_played=row.tracks_played,
                minutes_listened=round_minutes(row.minutes_listened),
                super_listeners=row.super_listeners,
            )
        )
    return series
