# ==============================================================================
# Play Deduplicator - Pure Domain Logic
# ==============================================================================
"""
Decides whether an incoming play is already recorded.

The upstream feed can report the same play with slightly different
timestamps across polls, so a candidate counts as a duplicate of an existing
play when both have the same connection and track and their timestamps are
within the tolerance window (inclusive on both sides). The first-seen
instance wins; later duplicates are dropped without raising.
"""

from bisect import bisect_left, insort
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta

from engagement.core.models import PlayEvent, RawPlay

DEFAULT_TOLERANCE = timedelta(minutes=5)


class PlayDeduplicator:
    """Tolerance-window duplicate detection for one connection's plays."""

    def __init__(self, tolerance: timedelta = DEFAULT_TOLERANCE):
        self.tolerance = tolerance

    def is_duplicate(
        self,
        connection_id: str,
        candidate: RawPlay | PlayEvent,
        existing: Iterable[PlayEvent],
    ) -> bool:
        """
        Check a single candidate against already persisted plays.

        Args:
            connection_id: Connection the candidate belongs to
            candidate: Incoming play
            existing: Persisted plays (any connection; others never match)

        Returns:
            True if an existing play matches within the tolerance window
        """
        for play in existing:
            if play.connection_id != connection_id or play.track_id != candidate.track_id:
                continue
            if abs(play.played_at - candidate.played_at) <= self.tolerance:
                return True
        return False

    def filter_new(
        self,
        connection_id: str,
        candidates: Iterable[RawPlay],
        existing: Iterable[PlayEvent],
    ) -> list[RawPlay]:
        """
        Drop candidates that duplicate a persisted play or an earlier candidate.

        Candidates are considered in the order given, so within one batch the
        first occurrence is kept.

        Returns:
            Candidates that should be persisted, in input order
        """
        index: dict[str, list[datetime]] = defaultdict(list)
        for play in existing:
            if play.connection_id == connection_id:
                insort(index[play.track_id], play.played_at)

        accepted: list[RawPlay] = []
        for candidate in candidates:
            seen = index[candidate.track_id]
            if self._has_neighbour(seen, candidate.played_at):
                continue
            insort(seen, candidate.played_at)
            accepted.append(candidate)
        return accepted

    def _has_neighbour(self, timestamps: list[datetime], instant: datetime) -> bool:
        """True if a sorted timestamp list has an entry within tolerance of instant."""
        position = bisect_left(timestamps, instant - self.tolerance)
        return position < len(timestamps) and timestamps[position] <= instant + self.tolerance
