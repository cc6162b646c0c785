# ==============================================================================
# Cache Abstract Base Class
# ==============================================================================
"""
Abstract interface for transient key-value storage with TTL.

This is NOT a repository: nothing here is a source of truth. The sweep uses
it for run history, which is JSON documents under their own keys plus a
time-ordered index of those keys.
"""

from abc import ABC, abstractmethod


class Cache(ABC):
    """
    Key-value cache with TTL support and scored indexes.

    Values are JSON-serializable dicts; implementations handle
    serialization internally.
    """

    @abstractmethod
    def get(self, key: str) -> dict | None:
        """
        Get a cached value.

        Returns:
            Cached value as dict, or None if missing, expired or undecodable
        """
        ...

    @abstractmethod
    def set(self, key: str, value: dict, ttl_seconds: int | None = None) -> None:
        """Set a cached value with optional TTL."""
        ...

    @abstractmethod
    def index_add(self, index: str, member: str, score: float) -> None:
        """Add or move a member in a scored index."""
        ...

    @abstractmethod
    def index_trim(self, index: str, max_score: float) -> int:
        """
        Drop index members scored at or below max_score.

        Returns:
            Number of members removed
        """
        ...

    @abstractmethod
    def index_latest(self, index: str, limit: int) -> list[str]:
        """Highest-scored members first, at most limit of them."""
        ...
