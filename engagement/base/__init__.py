# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the contracts for the ports-and-adapters architecture.
"""

from engagement.base.cache import Cache
from engagement.base.repositories import (
    ConnectionRepository,
    DayAggregateRepository,
    EngagementStore,
    PlayRepository,
    SessionRepository,
)
from engagement.base.runner import BaseRunner
from engagement.base.sources import CredentialProvider, EventSource

__all__ = [
    "BaseRunner",
    "Cache",
    "ConnectionRepository",
    "CredentialProvider",
    "DayAggregateRepository",
    "EngagementStore",
    "EventSource",
    "PlayRepository",
    "SessionRepository",
]
