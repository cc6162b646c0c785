# ==============================================================================
# Database Repository Adapters
# ==============================================================================
"""
Database adapters implementing the repository interfaces from base/repositories.py.

Currently supported:
- PostgreSQL (postgresql.py)
- In-memory (memory.py), for tests and local dry runs
"""

from engagement.infrastructure.repositories.memory import MemoryEngagementStore, MemoryState
from engagement.infrastructure.repositories.postgresql import (
    PostgreSQLEngagementStore,
    PostgreSQLTokenStore,
    check_postgresql_connection,
)

__all__ = [
    "MemoryEngagementStore",
    "MemoryState",
    "PostgreSQLEngagementStore",
    "PostgreSQLTokenStore",
    "check_postgresql_connection",
]
