# ==============================================================================
# Engagement Pipeline Utilities
# ==============================================================================
"""
Shared utilities: settings, retry policies, paths and schema management.
"""

from engagement.utils.config import (
    EngagementSettings,
    PostgresSettings,
    Settings,
    SpotifySettings,
    SweepSettings,
    ValkeySettings,
    get_settings,
)
from engagement.utils.db import (
    ensure_schema,
    reset_schema,
)

__all__ = [
    # Config
    "EngagementSettings",
    "PostgresSettings",
    "Settings",
    "SpotifySettings",
    "SweepSettings",
    "ValkeySettings",
    "get_settings",
    # Database
    "ensure_schema",
    "reset_schema",
]
