# ==============================================================================
# Ingestion Sweep
# ==============================================================================
"""
One pass over every active connection: fetch, dedup, persist, derive, aggregate.

For each connection the sweep:

    1. refreshes the listener's access token
    2. fetches recently played tracks from the event source
    3. drops plays already stored within the dedup tolerance
    4. inside one store transaction, inserts the new plays, replaces the
       connection's sessions and upserts the day rows the new plays touched

Connections are isolated: a failure is caught at the connection boundary,
counted and logged, and the sweep moves on. After the per-connection pass the
link day rows for every (link, day) touched are recomputed.

With workers > 1 connections run on a ThreadPoolExecutor. Every worker thread
gets its own store from store_factory, so no database connection is shared
between threads.

Usage:
    processor = SweepProcessor(store_factory, event_source, credentials)
    summary = processor.run()
"""

import hmac
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from engagement.base.repositories import EngagementStore
from engagement.base.sources import CredentialProvider, EventSource
from engagement.core.aggregation import (
    compute_connection_day,
    compute_link_day,
    touched_day_keys,
)
from engagement.core.day_bucket import DayBucketer
from engagement.core.dedup import PlayDeduplicator
from engagement.core.errors import (
    EngagementError,
    InternalInvariantError,
    UnauthorizedError,
)
from engagement.core.models import Connection, PlayEvent, SweepSummary
from engagement.core.session_processor import SessionDeriver

logger = logging.getLogger(__name__)


def authorize_trigger(provided: str | None, expected: str | None) -> None:
    """
    Check the shared secret presented by a sweep trigger.

    Args:
        provided: Key presented by the caller
        expected: Configured key; None means no trigger is accepted

    Raises:
        UnauthorizedError: If no key is configured or the keys differ
    """
    if not expected or provided is None:
        raise UnauthorizedError("Unauthorized")
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedError("Unauthorized")


@dataclass
class ConnectionOutcome:
    """Result of processing one connection."""

    connection_id: str
    link_id: str
    ok: bool = True
    plays_added: int = 0
    sessions_derived: int = 0
    touched_days: list[datetime] = field(default_factory=list)
    join_day: datetime | None = None


class SweepProcessor:
    """Runs one ingestion sweep over all active connections."""

    def __init__(
        self,
        store_factory: Callable[[], EngagementStore],
        event_source: EventSource,
        credentials: CredentialProvider,
        bucketer: DayBucketer | None = None,
        deriver: SessionDeriver | None = None,
        deduplicator: PlayDeduplicator | None = None,
        retention_days: int = 45,
        workers: int = 1,
        should_stop: Callable[[], bool] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the sweep processor.

        Args:
            store_factory: Returns a new, unconnected EngagementStore
            event_source: Upstream recently-played source
            credentials: Access token provider
            bucketer: Day-key helper (default: Europe/Copenhagen)
            deriver: Session deriver (default: 30 min gap, 15 track threshold)
            deduplicator: Play deduplicator (default: 5 minute tolerance)
            retention_days: Connections joined longer ago are not polled
            workers: Worker threads; 1 processes connections sequentially
            should_stop: Polled between connections; True skips the rest
            clock: Callable returning the current UTC instant
        """
        self._store_factory = store_factory
        self._source = event_source
        self._credentials = credentials
        self._bucketer = bucketer or DayBucketer()
        self._deriver = deriver or SessionDeriver()
        self._dedup = deduplicator or PlayDeduplicator()
        self._retention_days = retention_days
        self._workers = max(1, workers)
        self._should_stop = should_stop or (lambda: False)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._local = threading.local()
        self._open_stores: list[EngagementStore] = []
        self._stores_lock = threading.Lock()

    # ==========================================================================
    # Store Handling
    # ==========================================================================

    def _store(self) -> EngagementStore:
        """Store bound to the calling thread, connected on first use."""
        store = getattr(self._local, "store", None)
        if store is None:
            store = self._store_factory()
            store.connect()
            self._local.store = store
            with self._stores_lock:
                self._open_stores.append(store)
        return store

    def _close_stores(self) -> None:
        with self._stores_lock:
            stores, self._open_stores = self._open_stores, []
        for store in stores:
            store.close()
        self._local = threading.local()

    # ==========================================================================
    # Sweep
    # ==========================================================================

    def run(self) -> SweepSummary:
        """
        Process every active connection once.

        Returns:
            SweepSummary with counts for the whole run
        """
        summary = SweepSummary(started_at=self._clock())
        try:
            joined_after = summary.started_at - timedelta(days=self._retention_days)
            connections = self._store().connections.list_active(joined_after)
            logger.info(
                "Sweep started: %d active connections, workers=%d",
                len(connections),
                self._workers,
            )

            outcomes = self._process_all(connections, summary)
            for outcome in outcomes:
                if outcome.ok:
                    summary.connections_processed += 1
                    summary.plays_added += outcome.plays_added
                    summary.sessions_derived += outcome.sessions_derived
                else:
                    summary.errors += 1

            self._refresh_link_days(outcomes, summary)
        finally:
            self._close_stores()

        summary.finished_at = self._clock()
        logger.info(
            "Sweep complete: %d processed, %d failed, %d skipped | "
            "%s plays added, %s sessions, %d link days | %.1fs",
            summary.connections_processed,
            summary.errors,
            summary.connections_skipped,
            f"{summary.plays_added:,}",
            f"{summary.sessions_derived:,}",
            summary.link_days_updated,
            summary.duration_seconds,
        )
        return summary

    def _process_all(
        self, connections: list[Connection], summary: SweepSummary
    ) -> list[ConnectionOutcome]:
        if self._workers == 1:
            outcomes = []
            for connection in connections:
                if self._should_stop():
                    summary.connections_skipped += 1
                    continue
                outcomes.append(self._process_isolated(connection))
            return outcomes

        outcomes = []
        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            futures = [
                executor.submit(self._process_guarded, connection) for connection in connections
            ]
            for future in as_completed(futures):
                outcome = future.result()
                if outcome is None:
                    summary.connections_skipped += 1
                else:
                    outcomes.append(outcome)
        return outcomes

    def _process_guarded(self, connection: Connection) -> ConnectionOutcome | None:
        """Worker entry point; returns None when a stop was requested first."""
        if self._should_stop():
            return None
        return self._process_isolated(connection)

    def _process_isolated(self, connection: Connection) -> ConnectionOutcome:
        """Process one connection, converting any failure into a failed outcome."""
        try:
            return self._process_connection(connection)
        except InternalInvariantError:
            logger.exception("Invariant violated while processing connection %s", connection.id)
        except EngagementError as e:
            logger.error(
                "Connection %s failed (%s): %s", connection.id, type(e).__name__, e
            )
        except Exception:
            logger.exception("Unexpected error processing connection %s", connection.id)
        return ConnectionOutcome(connection.id, connection.link_id, ok=False)

    def _process_connection(self, connection: Connection) -> ConnectionOutcome:
        t0 = time.monotonic()
        token = self._credentials.refresh_token(connection)
        raw_plays = self._source.fetch_recent_plays(connection, token)
        t1 = time.monotonic()

        store = self._store()
        existing = store.plays.list_for_connection(connection.id)
        playlist = store.connections.playlist_track_ids(connection.link_id)
        candidates = [
            PlayEvent(
                connection_id=connection.id,
                track_id=raw.track_id,
                played_at=raw.played_at,
                duration_ms=raw.duration_ms,
                matched_playlist=raw.track_id in playlist,
            )
            for raw in raw_plays
        ]
        new_plays = self._dedup.filter_new(connection.id, candidates, existing)

        all_plays = existing + new_plays
        sessions = self._deriver.derive(all_plays)
        touched = touched_day_keys(new_plays, self._bucketer)
        day_rows = [
            compute_connection_day(connection.id, key, all_plays, self._bucketer, self._deriver)
            for key in touched
        ]

        with store.transaction():
            store.plays.add(new_plays)
            store.sessions.replace(connection.id, sessions)
            store.aggregates.upsert_connection_days(day_rows)
            store.connections.mark_polled(connection.id, self._clock())
        t2 = time.monotonic()

        fetch_ms = (t1 - t0) * 1000
        persist_ms = (t2 - t1) * 1000
        total_ms = (t2 - t0) * 1000
        logger.info(
            "Connection %s: %d fetched, %d new, %d sessions, %d days | "
            "fetch=%.*fms persist=%.*fms | total=%.*fms",
            connection.id,
            len(raw_plays),
            len(new_plays),
            len(sessions),
            len(day_rows),
            _precision(fetch_ms),
            fetch_ms,
            _precision(persist_ms),
            persist_ms,
            _precision(total_ms),
            total_ms,
        )

        return ConnectionOutcome(
            connection_id=connection.id,
            link_id=connection.link_id,
            plays_added=len(new_plays),
            sessions_derived=len(sessions),
            touched_days=touched,
            join_day=self._bucketer.day_key(connection.connected_at),
        )

    # ==========================================================================
    # Link Rollups
    # ==========================================================================

    def _refresh_link_days(
        self, outcomes: list[ConnectionOutcome], summary: SweepSummary
    ) -> None:
        """
        Recompute link day rows for every (link, day) touched in this sweep.

        A day is touched when it received new plays, or when it is the join
        day of a processed connection so that connections_new is written even
        for listeners who have not played anything yet.
        """
        touched: dict[str, set[datetime]] = defaultdict(set)
        for outcome in outcomes:
            if not outcome.ok:
                continue
            touched[outcome.link_id].update(outcome.touched_days)
            if outcome.join_day is not None:
                touched[outcome.link_id].add(outcome.join_day)

        for link_id, keys in sorted(touched.items()):
            try:
                summary.link_days_updated += self._refresh_link(link_id, sorted(keys))
            except EngagementError as e:
                summary.errors += 1
                logger.error("Link %s day refresh failed (%s): %s", link_id, type(e).__name__, e)

    def _refresh_link(self, link_id: str, keys: list[datetime]) -> int:
        store = self._store()
        connections = store.connections.list_for_link(link_id)
        ids = [c.id for c in connections]
        plays = store.plays.list_for_connections(ids)
        connection_days = store.aggregates.list_connection_days(
            ids, start=keys[0], end=self._bucketer.next_day_key(keys[-1])
        )
        rows = [
            compute_link_day(link_id, key, connections, plays, connection_days, self._bucketer)
            for key in keys
        ]
        with store.transaction():
            count = store.aggregates.upsert_link_days(rows)
        logger.debug("Link %s: %d day rows updated", link_id, count)
        return count


def run_sweep(
    trigger_key: str | None,
    expected_key: str | None,
    processor: SweepProcessor,
) -> SweepSummary:
    """
    Authorize a trigger, then run the sweep.

    Raises:
        UnauthorizedError: Before any side effect if the key is rejected
    """
    authorize_trigger(trigger_key, expected_key)
    return processor.run()


def _precision(ms: float) -> int:
    """Return decimal precision for millisecond values.

    >= 10ms  → 0 decimals (e.g., 85ms)
    >= 1ms   → 1 decimal  (e.g., 3.2ms)
    < 1ms    → 2 decimals (e.g., 0.45ms)
    """
    if ms >= 10:
        return 0
    if ms >= 1:
        return 1
    return 2
