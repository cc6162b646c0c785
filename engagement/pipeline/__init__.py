# ==============================================================================
# Pipelines
# ==============================================================================
"""
Scheduled jobs that write to the store.

- sweep: ingestion of recently played tracks and aggregate refresh
- retention_sweep: deactivation of connections past the retention window

Both jobs are gated by authorize_trigger() before they touch the store.
"""

from engagement.pipeline.retention_sweep import deactivate_expired_connections
from engagement.pipeline.sweep import SweepProcessor, authorize_trigger, run_sweep

__all__ = [
    "SweepProcessor",
    "authorize_trigger",
    "deactivate_expired_connections",
    "run_sweep",
]
