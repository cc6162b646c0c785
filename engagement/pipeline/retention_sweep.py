# ==============================================================================
# Retention Sweep
# ==============================================================================
"""
Marks connections inactive once they fall outside the retention window.

Deactivated connections are no longer polled by the ingestion sweep and no
longer count as currently active listeners. Their plays and aggregates stay.
"""

import logging
from datetime import datetime, timedelta, timezone

from engagement.base.repositories import EngagementStore
from engagement.core.models import RetentionSweepResult

logger = logging.getLogger(__name__)


def deactivate_expired_connections(
    store: EngagementStore,
    retention_days: int = 45,
    now: datetime | None = None,
) -> RetentionSweepResult:
    """
    Deactivate active connections that joined before the retention cutoff.

    Args:
        store: Connected engagement store
        retention_days: Days after joining a connection stays active
        now: Clock override

    Returns:
        Number of connections deactivated and the cutoff used
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)

    with store.transaction():
        processed = store.connections.deactivate_joined_before(cutoff, ended_at=now)

    logger.info(
        "Retention sweep: %d connections deactivated (joined before %s)",
        processed,
        cutoff.isoformat(),
    )
    return RetentionSweepResult(processed=processed, cutoff=cutoff)
