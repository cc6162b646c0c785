# ==============================================================================
# PostgreSQL Repository Implementations
# ==============================================================================
"""
PostgreSQL implementations of the repository interfaces.

Provides:
- PostgreSQLEngagementStore: One connection shared by all repositories, with
  a transaction() scope used by the sweep per listener connection
- PostgreSQLTokenStore: Stored OAuth tokens for the credential provider

Plays are bulk inserted with execute_batch(); sessions are replaced with
DELETE + INSERT inside the caller's transaction; day rows are upserted with
ON CONFLICT ... DO UPDATE so reruns overwrite instead of accumulating.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

import psycopg2
from psycopg2.extras import RealDictCursor, execute_batch

from engagement.base.repositories import (
    ConnectionRepository,
    DayAggregateRepository,
    EngagementStore,
    PlayRepository,
    SessionRepository,
)
from engagement.core.errors import PersistenceError
from engagement.core.models import (
    AccessToken,
    Connection,
    ConnectionDayAggregate,
    LinkDayAggregate,
    ListeningSession,
    PlayEvent,
)
from engagement.utils.config import Settings, get_settings
from engagement.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light

logger = logging.getLogger(__name__)

# Batch size for execute_batch
PAGE_SIZE = 1000

# Connection timeout
CONNECT_TIMEOUT = 10


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


class _PostgreSQLRepository:
    """Shared query helpers bound to the owning store's connection."""

    def __init__(self, store: "PostgreSQLEngagementStore"):
        self._store = store

    @property
    def _schema(self) -> str:
        return self._store.schema

    def _fetch(self, sql: str, params: tuple | dict = ()) -> list[dict]:
        conn = self._store.conn
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            if not self._store.in_transaction:
                conn.commit()
            return rows
        except psycopg2.Error as e:
            self._store.rollback_if_idle()
            raise PersistenceError(f"Query failed: {e}") from e

    def _write(self, sql: str, params: tuple | dict = ()) -> int:
        conn = self._store.conn
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                count = cur.rowcount
            if not self._store.in_transaction:
                conn.commit()
            return count
        except psycopg2.Error as e:
            self._store.rollback_if_idle()
            raise PersistenceError(f"Write failed: {e}") from e

    def _write_batch(self, sql: str, rows: list[dict]) -> int:
        if not rows:
            return 0
        conn = self._store.conn
        try:
            with conn.cursor() as cur:
                execute_batch(cur, sql, rows, page_size=PAGE_SIZE)
            if not self._store.in_transaction:
                conn.commit()
            return len(rows)
        except psycopg2.Error as e:
            self._store.rollback_if_idle()
            raise PersistenceError(f"Batch write failed: {e}") from e


class PostgreSQLConnectionRepository(_PostgreSQLRepository, ConnectionRepository):
    _COLUMNS = (
        "id, link_id, listener_id, display_name, connected_at, "
        "is_active, last_polled_at, ended_at"
    )

    def get(self, connection_id: str) -> Connection | None:
        rows = self._fetch(
            f"SELECT {self._COLUMNS} FROM {self._schema}.connections WHERE id = %s",
            (connection_id,),
        )
        return Connection(**rows[0]) if rows else None

    def list_active(self, joined_after: datetime) -> list[Connection]:
        rows = self._fetch(
            f"""
            SELECT {self._COLUMNS} FROM {self._schema}.connections
            WHERE is_active AND connected_at >= %s
            ORDER BY connected_at
            """,
            (joined_after,),
        )
        return [Connection(**row) for row in rows]

    def list_for_link(self, link_id: str) -> list[Connection]:
        rows = self._fetch(
            f"""
            SELECT {self._COLUMNS} FROM {self._schema}.connections
            WHERE link_id = %s
            ORDER BY connected_at
            """,
            (link_id,),
        )
        return [Connection(**row) for row in rows]

    def playlist_track_ids(self, link_id: str) -> set[str]:
        rows = self._fetch(
            f"SELECT track_id FROM {self._schema}.playlist_tracks WHERE link_id = %s",
            (link_id,),
        )
        return {row["track_id"] for row in rows}

    def mark_polled(self, connection_id: str, polled_at: datetime) -> None:
        self._write(
            f"UPDATE {self._schema}.connections SET last_polled_at = %s WHERE id = %s",
            (polled_at, connection_id),
        )

    def deactivate_joined_before(self, cutoff: datetime, ended_at: datetime) -> int:
        return self._write(
            f"""
            UPDATE {self._schema}.connections
            SET is_active = FALSE, ended_at = %s
            WHERE is_active AND connected_at < %s
            """,
            (ended_at, cutoff),
        )


class PostgreSQLPlayRepository(_PostgreSQLRepository, PlayRepository):
    _COLUMNS = "connection_id, track_id, played_at, duration_ms, matched_playlist"

    def list_for_connection(self, connection_id: str) -> list[PlayEvent]:
        rows = self._fetch(
            f"""
            SELECT {self._COLUMNS} FROM {self._schema}.plays
            WHERE connection_id = %s
            ORDER BY played_at
            """,
            (connection_id,),
        )
        return [PlayEvent(**row) for row in rows]

    def list_for_connections(self, connection_ids: Iterable[str]) -> list[PlayEvent]:
        ids = list(connection_ids)
        if not ids:
            return []
        rows = self._fetch(
            f"""
            SELECT {self._COLUMNS} FROM {self._schema}.plays
            WHERE connection_id = ANY(%s)
            ORDER BY played_at
            """,
            (ids,),
        )
        return [PlayEvent(**row) for row in rows]

    def add(self, plays: list[PlayEvent]) -> int:
        count = self._write_batch(
            f"""
            INSERT INTO {self._schema}.plays
                (connection_id, track_id, played_at, duration_ms, matched_playlist)
            VALUES
                (%(connection_id)s, %(track_id)s, %(played_at)s,
                 %(duration_ms)s, %(matched_playlist)s)
            """,
            [play.model_dump() for play in plays],
        )
        logger.debug("Inserted %d plays", count)
        return count


class PostgreSQLSessionRepository(_PostgreSQLRepository, SessionRepository):
    def replace(self, connection_id: str, sessions: list[ListeningSession]) -> int:
        # Both statements must share a transaction; the caller provides it
        # via store.transaction(), otherwise each commits on its own.
        self._write(
            f"DELETE FROM {self._schema}.listening_sessions WHERE connection_id = %s",
            (connection_id,),
        )
        count = self._write_batch(
            f"""
            INSERT INTO {self._schema}.listening_sessions (
                connection_id, started_at, ended_at, track_count,
                total_minutes, super_listener_hit
            ) VALUES (
                %(connection_id)s, %(started_at)s, %(ended_at)s, %(track_count)s,
                %(total_minutes)s, %(super_listener_hit)s
            )
            """,
            [session.model_dump() for session in sessions],
        )
        logger.debug("Replaced sessions for %s (%d rows)", connection_id, count)
        return count

    def list_for_connection(self, connection_id: str) -> list[ListeningSession]:
        rows = self._fetch(
            f"""
            SELECT connection_id, started_at, ended_at, track_count,
                   total_minutes, super_listener_hit
            FROM {self._schema}.listening_sessions
            WHERE connection_id = %s
            ORDER BY started_at
            """,
            (connection_id,),
        )
        return [ListeningSession(**row) for row in rows]


class PostgreSQLDayAggregateRepository(_PostgreSQLRepository, DayAggregateRepository):
    def upsert_connection_days(self, rows: list[ConnectionDayAggregate]) -> int:
        return self._write_batch(
            f"""
            INSERT INTO {self._schema}.connection_day_aggregates (
                connection_id, day, tracks_played, matched_tracks,
                minutes_listened, super_listener_day
            ) VALUES (
                %(connection_id)s, %(day)s, %(tracks_played)s, %(matched_tracks)s,
                %(minutes_listened)s, %(super_listener_day)s
            )
            ON CONFLICT (connection_id, day) DO UPDATE SET
                tracks_played = EXCLUDED.tracks_played,
                matched_tracks = EXCLUDED.matched_tracks,
                minutes_listened = EXCLUDED.minutes_listened,
                super_listener_day = EXCLUDED.super_listener_day
            """,
            [row.model_dump() for row in rows],
        )

    def list_connection_days(
        self,
        connection_ids: Iterable[str],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ConnectionDayAggregate]:
        ids = list(connection_ids)
        if not ids:
            return []
        rows = self._fetch(
            f"""
            SELECT connection_id, day, tracks_played, matched_tracks,
                   minutes_listened, super_listener_day
            FROM {self._schema}.connection_day_aggregates
            WHERE connection_id = ANY(%(ids)s)
              AND (%(start)s::timestamptz IS NULL OR day >= %(start)s)
              AND (%(end)s::timestamptz IS NULL OR day < %(end)s)
            ORDER BY day, connection_id
            """,
            {"ids": ids, "start": start, "end": end},
        )
        return [ConnectionDayAggregate(**row) for row in rows]

    def upsert_link_days(self, rows: list[LinkDayAggregate]) -> int:
        return self._write_batch(
            f"""
            INSERT INTO {self._schema}.link_day_aggregates (
                link_id, day, connections_new, active_listeners,
                tracks_played, minutes_listened, super_listeners
            ) VALUES (
                %(link_id)s, %(day)s, %(connections_new)s, %(active_listeners)s,
                %(tracks_played)s, %(minutes_listened)s, %(super_listeners)s
            )
            ON CONFLICT (link_id, day) DO UPDATE SET
                connections_new = EXCLUDED.connections_new,
                active_listeners = EXCLUDED.active_listeners,
                tracks_played = EXCLUDED.tracks_played,
                minutes_listened = EXCLUDED.minutes_listened,
                super_listeners = EXCLUDED.super_listeners
            """,
            [row.model_dump() for row in rows],
        )

    def list_link_days(
        self, link_id: str, start: datetime, end: datetime
    ) -> list[LinkDayAggregate]:
        rows = self._fetch(
            f"""
            SELECT link_id, day, connections_new, active_listeners,
                   tracks_played, minutes_listened, super_listeners
            FROM {self._schema}.link_day_aggregates
            WHERE link_id = %s AND day >= %s AND day < %s
            ORDER BY day
            """,
            (link_id, start, end),
        )
        return [LinkDayAggregate(**row) for row in rows]


class PostgreSQLEngagementStore(EngagementStore):
    """
    PostgreSQL implementation of EngagementStore.

    Owns a single psycopg2 connection. Outside transaction() every statement
    commits on its own; inside it, statements commit together on exit or roll
    back together if the block raises. A store must not be shared between
    threads; give each sweep worker its own.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the store.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._schema = self._settings.postgres.schema_name
        self._in_transaction = False

        self.connections = PostgreSQLConnectionRepository(self)
        self.plays = PostgreSQLPlayRepository(self)
        self.sessions = PostgreSQLSessionRepository(self)
        self.aggregates = PostgreSQLDayAggregateRepository(self)

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @property
    def conn(self) -> "psycopg2.extensions.connection":
        if self._conn is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
        self._conn = psycopg2.connect(conn_string)
        logger.debug("PostgreSQLEngagementStore connected (schema=%s)", self._schema)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        conn = self.conn
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._in_transaction = False
            self.rollback()
            raise
        self._in_transaction = False
        try:
            conn.commit()
        except psycopg2.Error as e:
            self.rollback()
            raise PersistenceError(f"Commit failed: {e}") from e

    def rollback(self) -> None:
        """Rollback current transaction."""
        if self._conn:
            try:
                self._conn.rollback()
            except psycopg2.Error as e:
                logger.warning("Rollback failed: %s", e)

    def rollback_if_idle(self) -> None:
        """Rollback a failed statement unless an outer transaction owns it."""
        if not self._in_transaction:
            self.rollback()

    def close(self) -> None:
        """Close connection and release resources."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug("PostgreSQLEngagementStore connection closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None


class PostgreSQLTokenStore:
    """
    Reads and updates stored OAuth tokens for listener connections.

    Sweep workers share one token store, so access to its connection is
    serialized with a lock.
    """

    def __init__(self, store: PostgreSQLEngagementStore):
        self._store = store
        self._lock = threading.Lock()

    def get(self, connection_id: str) -> dict | None:
        """
        Fetch the stored token row.

        Returns:
            Dict with access_token, refresh_token and expires_at, or None
        """
        with self._lock:
            try:
                with self._store.conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        SELECT access_token, refresh_token, expires_at
                        FROM {self._store.schema}.oauth_tokens
                        WHERE connection_id = %s
                        """,
                        (connection_id,),
                    )
                    row = cur.fetchone()
                self._store.conn.commit()
                return dict(row) if row else None
            except psycopg2.Error as e:
                self._store.rollback()
                raise PersistenceError(f"Token lookup failed: {e}") from e

    def save_access_token(self, connection_id: str, token: AccessToken) -> None:
        """Store a refreshed access token."""
        with self._lock:
            try:
                with self._store.conn.cursor() as cur:
                    cur.execute(
                        f"""
                        UPDATE {self._store.schema}.oauth_tokens
                        SET access_token = %s, expires_at = %s
                        WHERE connection_id = %s
                        """,
                        (token.access_token, token.expires_at, connection_id),
                    )
                self._store.conn.commit()
            except psycopg2.Error as e:
                self._store.rollback()
                raise PersistenceError(f"Token update failed: {e}") from e


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        settings = settings or get_settings()
        conn_string = _add_connect_timeout(settings.postgres.connection_string)
        conn = psycopg2.connect(conn_string)
        conn.close()
        return True
    except psycopg2.Error:
        return False
