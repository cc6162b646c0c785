# ==============================================================================
# Tests for SessionDeriver — session_processor.py
# ==============================================================================
"""
Tests for session windowing, session construction and super-listener rules.
"""

from datetime import datetime, timedelta, timezone

import pytest

from engagement.core.errors import InternalInvariantError
from engagement.core.models import PlayEvent
from engagement.core.session_processor import SessionDeriver, play_minutes

T0 = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


def _play(offset_minutes: float, track_id: str = "t1", duration_ms: int = 180_000) -> PlayEvent:
    return PlayEvent(
        connection_id="c1",
        track_id=track_id,
        played_at=T0 + timedelta(minutes=offset_minutes),
        duration_ms=duration_ms,
    )


def _run(count: int, spacing_minutes: float = 3) -> list[PlayEvent]:
    return [_play(i * spacing_minutes, track_id=f"t{i}") for i in range(count)]


# ==============================================================================
# play_minutes
# ==============================================================================


class TestPlayMinutes:
    def test_full_duration(self):
        assert play_minutes(180_000) == pytest.approx(3.0)

    def test_never_negative(self):
        assert play_minutes(-5) == 0.0

    def test_none_counts_as_zero(self):
        assert play_minutes(None) == 0.0


# ==============================================================================
# derive
# ==============================================================================


class TestDerive:
    def test_empty_input(self, deriver):
        assert deriver.derive([]) == []

    def test_gap_splits_sessions(self, deriver):
        """Plays at 0, 10 and 50 minutes form {0, 10} and {50}."""
        sessions = deriver.derive([_play(0), _play(10), _play(50)])

        assert len(sessions) == 2
        assert sessions[0].started_at == T0
        assert sessions[0].ended_at == T0 + timedelta(minutes=10)
        assert sessions[0].track_count == 2
        assert sessions[1].started_at == T0 + timedelta(minutes=50)
        assert sessions[1].track_count == 1

    def test_gap_of_exactly_threshold_joins(self, deriver):
        sessions = deriver.derive([_play(0), _play(30)])
        assert len(sessions) == 1

    def test_compares_to_previous_play_not_session_start(self, deriver):
        """A chain of 20-minute gaps stays one session even past 30 minutes total."""
        sessions = deriver.derive([_play(0), _play(20), _play(40), _play(60)])
        assert len(sessions) == 1
        assert sessions[0].duration_seconds == 3600

    def test_input_order_does_not_matter(self, deriver):
        plays = [_play(0), _play(10), _play(50)]
        assert deriver.derive(plays) == deriver.derive(list(reversed(plays)))

    def test_sessions_are_chronological_and_disjoint(self, deriver):
        plays = [_play(m) for m in (0, 5, 100, 110, 300)]
        sessions = deriver.derive(plays)

        assert [s.track_count for s in sessions] == [2, 2, 1]
        for earlier, later in zip(sessions, sessions[1:]):
            assert earlier.ended_at < later.started_at

    def test_total_minutes_sums_durations(self, deriver):
        sessions = deriver.derive([_play(0, duration_ms=60_000), _play(2, duration_ms=90_000)])
        assert sessions[0].total_minutes == pytest.approx(2.5)

    def test_custom_gap(self):
        deriver = SessionDeriver(gap_minutes=5)
        assert len(deriver.derive([_play(0), _play(10)])) == 2


# ==============================================================================
# Super-listener classification
# ==============================================================================


class TestSuperListener:
    def test_fifteen_tracks_is_super(self, deriver):
        sessions = deriver.derive(_run(15))
        assert len(sessions) == 1
        assert sessions[0].super_listener_hit is True

    def test_fourteen_tracks_is_not_super(self, deriver):
        sessions = deriver.derive(_run(14))
        assert sessions[0].super_listener_hit is False

    def test_day_with_super_session(self, deriver):
        assert deriver.is_super_listener_day(_run(15))

    def test_day_with_many_short_sessions(self, deriver):
        """Fifteen plays an hour apart: no super session, still a super day."""
        plays = _run(15, spacing_minutes=60)
        assert not any(s.super_listener_hit for s in deriver.derive(plays))
        assert deriver.is_super_listener_day(plays)

    def test_quiet_day(self, deriver):
        assert not deriver.is_super_listener_day(_run(3))
        assert not deriver.is_super_listener_day([])


# ==============================================================================
# build_session
# ==============================================================================


class TestBuildSession:
    def test_empty_group_raises(self, deriver):
        with pytest.raises(InternalInvariantError):
            deriver.build_session([])

    def test_bounds(self, deriver):
        session = deriver.build_session([_play(10), _play(0), _play(5)])
        assert session.started_at == T0
        assert session.ended_at == T0 + timedelta(minutes=10)
        assert session.connection_id == "c1"
