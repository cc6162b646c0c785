# ==============================================================================
# Session Processor - Pure Domain Logic
# ==============================================================================
"""
Pure session derivation with no external dependencies.

This module contains the domain logic for listening sessions:
- Gap detection between consecutive plays
- Session construction and super-listener classification
- Super-listener day classification

Sessions are always derived from a connection's complete play set and
replace the previously stored set. That tolerates out-of-order arrival,
late dedup corrections and backfills without any session-merge logic.
"""

from collections.abc import Sequence
from datetime import timedelta

from engagement.core.errors import InternalInvariantError
from engagement.core.models import ListeningSession, PlayEvent


def play_minutes(duration_ms: int | None) -> float:
    """Minutes a single play contributes: its full duration, never negative."""
    return max(duration_ms or 0, 0) / 60000


class SessionDeriver:
    """
    Groups a listener's plays into bounded sessions.

    Plays are scanned most-recent-first, matching the order the upstream feed
    delivers them. Each play is compared to the last play added to the
    current session (not the session start); a gap no larger than the
    session gap keeps it in the session.
    """

    def __init__(self, gap_minutes: int = 30, super_listener_threshold: int = 15):
        """
        Initialize session deriver.

        Args:
            gap_minutes: Largest gap, in minutes, between two plays of one session
            super_listener_threshold: Track count that marks a super-listener session
        """
        self.gap = timedelta(minutes=gap_minutes)
        self.super_listener_threshold = super_listener_threshold

    def derive(self, plays: Sequence[PlayEvent]) -> list[ListeningSession]:
        """
        Derive the chronological session list for one connection.

        Args:
            plays: All of the connection's plays, in any order

        Returns:
            Sessions, oldest first. Empty input yields an empty list.
        """
        if not plays:
            return []

        ordered = sorted(plays, key=lambda p: p.played_at, reverse=True)

        sessions: list[ListeningSession] = []
        current: list[PlayEvent] = []
        for play in ordered:
            if not current:
                current = [play]
                continue

            gap = abs(play.played_at - current[-1].played_at)
            if gap <= self.gap:
                current.append(play)
            else:
                sessions.append(self.build_session(current))
                current = [play]

        if current:
            sessions.append(self.build_session(current))

        sessions.reverse()
        return sessions

    def build_session(self, plays: Sequence[PlayEvent]) -> ListeningSession:
        """
        Build one session record from a group of plays.

        Raises:
            InternalInvariantError: If the group is empty
        """
        if not plays:
            raise InternalInvariantError("Cannot create session from empty plays group")

        instants = [p.played_at for p in plays]
        track_count = len(plays)

        return ListeningSession(
            connection_id=plays[0].connection_id,
            started_at=min(instants),
            ended_at=max(instants),
            track_count=track_count,
            total_minutes=sum(play_minutes(p.duration_ms) for p in plays),
            super_listener_hit=track_count >= self.super_listener_threshold,
        )

    def is_super_listener_day(self, plays: Sequence[PlayEvent]) -> bool:
        """
        Classify one calendar day of a connection's plays.

        A day qualifies when any session derived from it reaches the
        threshold, or the day as a whole has at least that many plays.
        """
        if not plays:
            return False
        if any(s.super_listener_hit for s in self.derive(plays)):
            return True
        return len(plays) >= self.super_listener_threshold
