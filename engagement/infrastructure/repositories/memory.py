# ==============================================================================
# In-Memory Repository Implementations
# ==============================================================================
"""
In-memory implementations of the repository interfaces.

Used by the test suite and for local dry runs. Semantics match the
PostgreSQL store: plays append, sessions replace-all, day rows upsert, and
transaction() restores the previous state if the block raises.

All repositories of one store share a single MemoryState guarded by a
re-entrant lock, so a transaction holds the lock for its whole duration and
concurrent sweep workers serialize on it.
"""

import copy
import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from engagement.base.repositories import (
    ConnectionRepository,
    DayAggregateRepository,
    EngagementStore,
    PlayRepository,
    SessionRepository,
)
from engagement.core.models import (
    Connection,
    ConnectionDayAggregate,
    LinkDayAggregate,
    ListeningSession,
    PlayEvent,
)

logger = logging.getLogger(__name__)


@dataclass
class MemoryState:
    """Mutable tables backing an in-memory store."""

    connections: dict[str, Connection] = field(default_factory=dict)
    playlists: dict[str, set[str]] = field(default_factory=dict)
    plays: list[PlayEvent] = field(default_factory=list)
    sessions: dict[str, list[ListeningSession]] = field(default_factory=dict)
    connection_days: dict[tuple[str, datetime], ConnectionDayAggregate] = field(
        default_factory=dict
    )
    link_days: dict[tuple[str, datetime], LinkDayAggregate] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def snapshot(self) -> dict:
        """Copy every table (not the lock)."""
        return copy.deepcopy(
            {
                "connections": self.connections,
                "playlists": self.playlists,
                "plays": self.plays,
                "sessions": self.sessions,
                "connection_days": self.connection_days,
                "link_days": self.link_days,
            }
        )

    def restore(self, snapshot: dict) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)


class MemoryConnectionRepository(ConnectionRepository):
    def __init__(self, state: MemoryState):
        self._state = state

    def get(self, connection_id: str) -> Connection | None:
        with self._state.lock:
            return self._state.connections.get(connection_id)

    def list_active(self, joined_after: datetime) -> list[Connection]:
        with self._state.lock:
            active = [
                c
                for c in self._state.connections.values()
                if c.is_active and c.connected_at >= joined_after
            ]
        return sorted(active, key=lambda c: c.connected_at)

    def list_for_link(self, link_id: str) -> list[Connection]:
        with self._state.lock:
            members = [c for c in self._state.connections.values() if c.link_id == link_id]
        return sorted(members, key=lambda c: c.connected_at)

    def playlist_track_ids(self, link_id: str) -> set[str]:
        with self._state.lock:
            return set(self._state.playlists.get(link_id, set()))

    def mark_polled(self, connection_id: str, polled_at: datetime) -> None:
        with self._state.lock:
            connection = self._state.connections.get(connection_id)
            if connection is not None:
                self._state.connections[connection_id] = connection.model_copy(
                    update={"last_polled_at": polled_at}
                )

    def deactivate_joined_before(self, cutoff: datetime, ended_at: datetime) -> int:
        count = 0
        with self._state.lock:
            for connection_id, connection in list(self._state.connections.items()):
                if connection.is_active and connection.connected_at < cutoff:
                    self._state.connections[connection_id] = connection.model_copy(
                        update={"is_active": False, "ended_at": ended_at}
                    )
                    count += 1
        return count

    # Seeding helpers (not part of the repository contract)

    def add(self, connection: Connection) -> None:
        with self._state.lock:
            self._state.connections[connection.id] = connection

    def set_playlist(self, link_id: str, track_ids: Iterable[str]) -> None:
        with self._state.lock:
            self._state.playlists[link_id] = set(track_ids)


class MemoryPlayRepository(PlayRepository):
    def __init__(self, state: MemoryState):
        self._state = state

    def list_for_connection(self, connection_id: str) -> list[PlayEvent]:
        with self._state.lock:
            return [p for p in self._state.plays if p.connection_id == connection_id]

    def list_for_connections(self, connection_ids: Iterable[str]) -> list[PlayEvent]:
        wanted = set(connection_ids)
        with self._state.lock:
            return [p for p in self._state.plays if p.connection_id in wanted]

    def add(self, plays: list[PlayEvent]) -> int:
        with self._state.lock:
            self._state.plays.extend(plays)
        return len(plays)


class MemorySessionRepository(SessionRepository):
    def __init__(self, state: MemoryState):
        self._state = state

    def replace(self, connection_id: str, sessions: list[ListeningSession]) -> int:
        with self._state.lock:
            self._state.sessions[connection_id] = list(sessions)
        return len(sessions)

    def list_for_connection(self, connection_id: str) -> list[ListeningSession]:
        with self._state.lock:
            stored = list(self._state.sessions.get(connection_id, []))
        return sorted(stored, key=lambda s: s.started_at)


class MemoryDayAggregateRepository(DayAggregateRepository):
    def __init__(self, state: MemoryState):
        self._state = state

    def upsert_connection_days(self, rows: list[ConnectionDayAggregate]) -> int:
        with self._state.lock:
            for row in rows:
                self._state.connection_days[(row.connection_id, row.day)] = row
        return len(rows)

    def list_connection_days(
        self,
        connection_ids: Iterable[str],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ConnectionDayAggregate]:
        wanted = set(connection_ids)
        with self._state.lock:
            rows = [
                row
                for (connection_id, day), row in self._state.connection_days.items()
                if connection_id in wanted
                and (start is None or day >= start)
                and (end is None or day < end)
            ]
        return sorted(rows, key=lambda r: (r.day, r.connection_id))

    def upsert_link_days(self, rows: list[LinkDayAggregate]) -> int:
        with self._state.lock:
            for row in rows:
                self._state.link_days[(row.link_id, row.day)] = row
        return len(rows)

    def list_link_days(
        self, link_id: str, start: datetime, end: datetime
    ) -> list[LinkDayAggregate]:
        with self._state.lock:
            rows = [
                row
                for (row_link, day), row in self._state.link_days.items()
                if row_link == link_id and start <= day < end
            ]
        return sorted(rows, key=lambda r: r.day)


class MemoryEngagementStore(EngagementStore):
    """
    EngagementStore over a shared MemoryState.

    Several store objects may share one state, which is how a store factory
    hands each sweep worker its own store while all of them see the same data.
    """

    def __init__(self, state: MemoryState | None = None):
        self.state = state or MemoryState()
        self.connections = MemoryConnectionRepository(self.state)
        self.plays = MemoryPlayRepository(self.state)
        self.sessions = MemorySessionRepository(self.state)
        self.aggregates = MemoryDayAggregateRepository(self.state)

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.state.lock:
            snapshot = self.state.snapshot()
            try:
                yield
            except BaseException:
                self.state.restore(snapshot)
                logger.debug("In-memory transaction rolled back")
                raise
