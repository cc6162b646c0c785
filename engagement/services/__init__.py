# ==============================================================================
# Services
# ==============================================================================
"""
Read-side services over the engagement store.
"""

from engagement.services.metrics import MetricsService

__all__ = ["MetricsService"]
