# ==============================================================================
# Sweep Run History
# ==============================================================================
"""
Recent sweep summaries kept in Valkey.

Each summary is stored as JSON under its own key with a TTL, and indexed by
start time so the CLI can list the latest runs. Index entries older than the
TTL are trimmed on every write; a listed key whose value already expired is
skipped.
"""

import logging
from datetime import datetime, timezone

from engagement.base.cache import Cache
from engagement.core.models import SweepSummary

logger = logging.getLogger(__name__)

INDEX_KEY = "engagement:sweep:runs"
RUN_KEY_PREFIX = "engagement:sweep:run:"


class SweepHistory:
    """Records and lists sweep summaries."""

    def __init__(self, cache: Cache, ttl_hours: int = 168):
        self._cache = cache
        self._ttl_seconds = ttl_hours * 3600

    @staticmethod
    def _run_key(started_at: datetime) -> str:
        return f"{RUN_KEY_PREFIX}{started_at.isoformat()}"

    def record(self, summary: SweepSummary) -> None:
        """Store a summary and trim expired index entries."""
        key = self._run_key(summary.started_at)
        self._cache.set(key, summary.model_dump(mode="json"), ttl_seconds=self._ttl_seconds)
        self._cache.index_add(INDEX_KEY, key, summary.started_at.timestamp())

        cutoff = datetime.now(timezone.utc).timestamp() - self._ttl_seconds
        trimmed = self._cache.index_trim(INDEX_KEY, cutoff)
        logger.debug("Recorded sweep summary %s (%d expired entries trimmed)", key, trimmed)

    def history(self, limit: int = 10) -> list[SweepSummary]:
        """
        List recent sweeps, newest first.

        Args:
            limit: Maximum number of summaries to return

        Returns:
            Summaries whose keys have not yet expired
        """
        summaries = []
        for key in self._cache.index_latest(INDEX_KEY, limit):
            value = self._cache.get(key)
            if value is not None:
                summaries.append(SweepSummary.model_validate(value))
        return summaries

    def last(self) -> SweepSummary | None:
        """Most recent sweep, if any is still retained."""
        runs = self.history(limit=1)
        return runs[0] if runs else None
