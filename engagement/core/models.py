# ==============================================================================
# Engagement Domain Models
# ==============================================================================
"""
Pydantic models for plays, sessions, day aggregates and metric read shapes.

These models are used for:
- Validating plays coming back from the streaming API
- Passing rows between the pipeline and the repositories
- Serializing metric reports for the CLI (--json)

This module is part of the core domain layer and has no external dependencies
beyond Pydantic. All datetimes are timezone-aware UTC; naive values are read
as UTC.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from engagement.core.day_bucket import ensure_utc


class RawPlay(BaseModel):
    """
    A recently played item as reported by the event source.

    Attributes:
        track_id: Streaming service track identifier
        played_at: When playback finished, as reported upstream
        duration_ms: Track length in milliseconds
    """

    track_id: str = Field(..., description="Track identifier")
    played_at: datetime = Field(..., description="Playback instant")
    duration_ms: int = Field(default=0, ge=0, description="Track duration in milliseconds")

    @field_validator("played_at")
    @classmethod
    def normalize_played_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class PlayEvent(BaseModel):
    """
    A recorded play for one listener connection. Immutable once persisted.
    """

    model_config = {"frozen": True}

    connection_id: str = Field(..., description="Listener connection identifier")
    track_id: str = Field(..., description="Track identifier")
    played_at: datetime = Field(..., description="Playback instant (UTC)")
    duration_ms: int = Field(default=0, ge=0, description="Track duration in milliseconds")
    matched_playlist: bool = Field(
        default=False, description="Track belongs to the link's target playlist"
    )

    @field_validator("played_at")
    @classmethod
    def normalize_played_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ListeningSession(BaseModel):
    """
    A maximal run of plays no more than the session gap apart.

    Sessions are derived, never authored: the full set for a connection is
    recomputed from its plays and replaces whatever was stored before.
    """

    connection_id: str = Field(..., description="Owning connection identifier")
    started_at: datetime = Field(..., description="Earliest play in the session")
    ended_at: datetime = Field(..., description="Latest play in the session")
    track_count: int = Field(..., ge=1, description="Number of plays")
    total_minutes: float = Field(..., ge=0, description="Sum of per-play minutes")
    super_listener_hit: bool = Field(default=False, description="Track count reached threshold")

    @field_validator("started_at", "ended_at")
    @classmethod
    def normalize_bounds(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_bounds(self) -> "ListeningSession":
        if self.started_at > self.ended_at:
            raise ValueError("session start must not be after its end")
        return self

    @property
    def duration_seconds(self) -> int:
        """Wall-clock span between first and last play."""
        return int((self.ended_at - self.started_at).total_seconds())


class ConnectionDayAggregate(BaseModel):
    """One row per (connection, day key); overwritten on every recompute."""

    connection_id: str
    day: datetime = Field(..., description="Day key (local midnight as UTC)")
    tracks_played: int = 0
    matched_tracks: int = 0
    minutes_listened: float = 0.0
    super_listener_day: bool = False

    @field_validator("day")
    @classmethod
    def normalize_day(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class LinkDayAggregate(BaseModel):
    """One row per (link, day key); overwritten on every recompute."""

    link_id: str
    day: datetime = Field(..., description="Day key (local midnight as UTC)")
    connections_new: int = 0
    active_listeners: int = 0
    tracks_played: int = 0
    minutes_listened: float = 0.0
    super_listeners: int = 0

    @field_validator("day")
    @classmethod
    def normalize_day(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Connection(BaseModel):
    """A listener linked to a tracking link."""

    id: str
    link_id: str
    listener_id: str
    display_name: str | None = None
    connected_at: datetime
    is_active: bool = True
    last_polled_at: datetime | None = None
    ended_at: datetime | None = None

    @field_validator("connected_at", "last_polled_at", "ended_at")
    @classmethod
    def normalize_instants(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class AccessToken(BaseModel):
    """A usable bearer token for the streaming API."""

    access_token: str
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ==============================================================================
# Read Shapes
# ==============================================================================


class WindowMetrics(BaseModel):
    """Link activity over the last seven day keys."""

    new_connections: int = 0
    active_listeners: int = 0
    tracks_played: int = 0
    super_listeners: int = 0


class RecentConnection(BaseModel):
    """Entry in a link's recent activity feed."""

    id: str
    display_name: str | None = None
    connected_at: datetime
    total_tracks_played: int = 0
    total_minutes: int = 0


class LinkMetrics(BaseModel):
    """Headline metrics for one tracking link."""

    total_connections: int = 0
    total_active_listeners: int = 0
    total_tracks_played: int = 0
    total_minutes_listened: int = 0
    total_super_listeners: int = 0
    last_7_days: WindowMetrics = Field(default_factory=WindowMetrics)
    recent_connections: list[RecentConnection] = Field(default_factory=list)


class UserMetrics(BaseModel):
    """Per-connection metrics for the audience table."""

    total_tracks_played: int = 0
    total_minutes_listened: int = 0
    total_sessions: int = 0
    super_listener_count: int = 0
    last_active: datetime | None = None


class DailyMetric(BaseModel):
    """One zero-filled point of a link's daily series."""

    day: datetime
    connections_new: int = 0
    active_listeners: int = 0
    tracks_played: int = 0
    minutes_listened: int = 0
    super_listeners: int = 0


class RetentionDay(BaseModel):
    """Retention of one cohort on one day key."""

    date: str
    active_users: int = 0
    retention_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class CohortRetention(BaseModel):
    """Retention curve for the connections that joined on one day."""

    cohort_date: str
    total_users: int = 0
    retention_by_day: list[RetentionDay] = Field(default_factory=list)


class SweepSummary(BaseModel):
    """Outcome of one ingestion sweep."""

    started_at: datetime
    finished_at: datetime | None = None
    connections_processed: int = 0
    connections_skipped: int = 0
    plays_added: int = 0
    sessions_derived: int = 0
    link_days_updated: int = 0
    errors: int = 0

    @property
    def duration_seconds(self) -> float:
        """Wall-clock sweep duration."""
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class RetentionSweepResult(BaseModel):
    """Outcome of marking expired connections inactive."""

    processed: int = 0
    cutoff: datetime
