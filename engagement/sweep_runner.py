# ==============================================================================
# Sweep Runner
# ==============================================================================
"""
Wires the production adapters together and runs one ingestion sweep.

Started by 'engagement sweep run' (typically from a scheduler). The trigger
key is checked before any connection is opened. A stop signal lets the
connection in flight finish and skips the rest.
"""

import logging
from datetime import timedelta

from redis.exceptions import RedisError

from engagement.base import BaseRunner
from engagement.core.day_bucket import DayBucketer
from engagement.core.dedup import PlayDeduplicator
from engagement.core.models import SweepSummary
from engagement.core.session_processor import SessionDeriver
from engagement.infrastructure.cache import ValkeyCache
from engagement.infrastructure.repositories import (
    PostgreSQLEngagementStore,
    PostgreSQLTokenStore,
)
from engagement.infrastructure.spotify import SpotifyCredentialProvider, SpotifyEventSource
from engagement.infrastructure.sweep_history import SweepHistory
from engagement.pipeline.sweep import SweepProcessor, authorize_trigger
from engagement.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SweepRunner(BaseRunner):
    """Runs one sweep against PostgreSQL and the Spotify Web API."""

    def __init__(
        self,
        trigger_key: str | None,
        settings: Settings | None = None,
        workers: int | None = None,
        record_history: bool = True,
    ):
        self._settings = settings or get_settings()
        super().__init__(log_level=self._settings.log_level)
        self._trigger_key = trigger_key
        self._workers = workers if workers is not None else self._settings.sweep.workers
        self._record_history = record_history
        self._token_db: PostgreSQLEngagementStore | None = None

    def _setup_logging(self) -> None:
        super()._setup_logging()
        # Suppress noisy third-party loggers
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    def _run(self) -> SweepSummary:
        authorize_trigger(self._trigger_key, self._settings.sweep.cron_key)

        domain = self._settings.engagement
        self._token_db = PostgreSQLEngagementStore(self._settings)
        self._token_db.connect()

        processor = SweepProcessor(
            store_factory=lambda: PostgreSQLEngagementStore(self._settings),
            event_source=SpotifyEventSource(self._settings.spotify),
            credentials=SpotifyCredentialProvider(
                PostgreSQLTokenStore(self._token_db), self._settings.spotify
            ),
            bucketer=DayBucketer(domain.timezone),
            deriver=SessionDeriver(domain.session_gap_minutes, domain.super_listener_threshold),
            deduplicator=PlayDeduplicator(timedelta(minutes=domain.dedup_tolerance_minutes)),
            retention_days=domain.retention_days,
            workers=self._workers,
            should_stop=lambda: self.shutdown_requested,
        )
        summary = processor.run()

        if self._record_history:
            self._save_history(summary)
        return summary

    def _save_history(self, summary: SweepSummary) -> None:
        cache = ValkeyCache(self._settings.valkey.url)
        try:
            SweepHistory(cache, self._settings.sweep.history_ttl_hours).record(summary)
        except RedisError as e:
            logger.warning("Could not record sweep history: %s", e)
        finally:
            cache.close()

    def _cleanup(self) -> None:
        if self._token_db is not None:
            self._token_db.close()
            self._token_db = None
