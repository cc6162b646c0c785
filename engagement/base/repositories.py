# ==============================================================================
# Repository Abstract Base Classes
# ==============================================================================
"""
Repository ABCs for engagement persistence.

These define the "what" (store plays, replace sessions, upsert day rows) not
the "how". Concrete implementations in infrastructure/repositories/ handle
the specifics.

Includes:
- ConnectionRepository: Listener connections and their link's playlist
- PlayRepository: Append-only play events
- SessionRepository: Replace-all listening sessions per connection
- DayAggregateRepository: Upsert-overwrite day rows per connection and per link
- EngagementStore: Bundles the four behind one transaction boundary
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from engagement.core.models import (
    Connection,
    ConnectionDayAggregate,
    LinkDayAggregate,
    ListeningSession,
    PlayEvent,
)


class ConnectionRepository(ABC):
    """Repository for listener connections."""

    @abstractmethod
    def get(self, connection_id: str) -> Connection | None:
        """Fetch one connection by id."""
        ...

    @abstractmethod
    def list_active(self, joined_after: datetime) -> list[Connection]:
        """
        Connections the sweep should poll.

        Args:
            joined_after: Only connections that joined at or after this instant

        Returns:
            Active connections, oldest join first
        """
        ...

    @abstractmethod
    def list_for_link(self, link_id: str) -> list[Connection]:
        """Every connection ever linked to a link, active or not."""
        ...

    @abstractmethod
    def playlist_track_ids(self, link_id: str) -> set[str]:
        """Track ids of the link's target playlist."""
        ...

    @abstractmethod
    def mark_polled(self, connection_id: str, polled_at: datetime) -> None:
        """Record the last successful poll instant."""
        ...

    @abstractmethod
    def deactivate_joined_before(self, cutoff: datetime, ended_at: datetime) -> int:
        """
        Mark active connections that joined before ``cutoff`` as inactive.

        Returns:
            Count of connections deactivated
        """
        ...


class PlayRepository(ABC):
    """Repository for play events. Plays are never updated."""

    @abstractmethod
    def list_for_connection(self, connection_id: str) -> list[PlayEvent]:
        """All plays of one connection."""
        ...

    @abstractmethod
    def list_for_connections(self, connection_ids: Iterable[str]) -> list[PlayEvent]:
        """All plays of several connections."""
        ...

    @abstractmethod
    def add(self, plays: list[PlayEvent]) -> int:
        """
        Persist new plays.

        Returns:
            Count of plays saved
        """
        ...


class SessionRepository(ABC):
    """Repository for derived listening sessions."""

    @abstractmethod
    def replace(self, connection_id: str, sessions: list[ListeningSession]) -> int:
        """
        Replace every stored session of a connection with ``sessions``.

        Never patches individual sessions: the stored set after this call is
        exactly the given list.

        Returns:
            Count of sessions stored
        """
        ...

    @abstractmethod
    def list_for_connection(self, connection_id: str) -> list[ListeningSession]:
        """Stored sessions of one connection, oldest first."""
        ...


class DayAggregateRepository(ABC):
    """Repository for per-connection and per-link day rows."""

    @abstractmethod
    def upsert_connection_days(self, rows: list[ConnectionDayAggregate]) -> int:
        """Insert or overwrite (connection, day) rows."""
        ...

    @abstractmethod
    def list_connection_days(
        self,
        connection_ids: Iterable[str],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ConnectionDayAggregate]:
        """Day rows of the given connections, optionally within [start, end)."""
        ...

    @abstractmethod
    def upsert_link_days(self, rows: list[LinkDayAggregate]) -> int:
        """Insert or overwrite (link, day) rows."""
        ...

    @abstractmethod
    def list_link_days(
        self, link_id: str, start: datetime, end: datetime
    ) -> list[LinkDayAggregate]:
        """Day rows of one link within [start, end), oldest first."""
        ...


class EngagementStore(ABC):
    """
    Bundle of repositories sharing one transaction boundary.

    Usable as a context manager: entering connects, leaving closes.
    """

    connections: ConnectionRepository
    plays: PlayRepository
    sessions: SessionRepository
    aggregates: DayAggregateRepository

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the data store."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close connection and release resources."""
        ...

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Scope writes so they commit together or not at all.

        Raises:
            PersistenceError: If the commit fails (the transaction is rolled back)
        """
        ...

    def __enter__(self) -> "EngagementStore":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
