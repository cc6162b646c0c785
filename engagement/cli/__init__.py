# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for the engagement pipeline.

Commands are organized into separate modules for maintainability:
- shared.py: Common utilities, constants, and helpers
- sweep.py: Ingestion sweep and sweep history
- metrics.py: Link, listener, daily and retention metrics
- retention.py: Retention window maintenance
- db.py: Schema management
- config.py: Configuration display
"""

from engagement.cli.shared import (
    C,
    Colors,
    I,
    Icons,
    build_metrics_service,
    open_store,
)

__all__ = [
    "C",
    "Colors",
    "I",
    "Icons",
    "build_metrics_service",
    "open_store",
]
