# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and status icons
- Store and service construction from settings
- Trigger key option shared by the sweep commands
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Any, Optional

import typer

from engagement.core.day_bucket import DayBucketer
from engagement.infrastructure.repositories import PostgreSQLEngagementStore
from engagement.services.metrics import MetricsService
from engagement.utils.config import get_settings

# ==============================================================================
# ANSI Colors and Icons
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"
    BULLET = "•"
    DATABASE = "◆"


# Module-level aliases for convenience
C, I = Colors, Icons


# ==============================================================================
# Options
# ==============================================================================

TriggerKey = Annotated[
    Optional[str],
    typer.Option(
        "--key",
        "-k",
        envvar="SWEEP_TRIGGER_KEY",
        help="Shared secret authorizing the job (must match SWEEP_CRON_KEY)",
        show_default=False,
    ),
]

JsonOutput = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")]


# ==============================================================================
# Helpers
# ==============================================================================


@contextmanager
def open_store() -> Iterator[PostgreSQLEngagementStore]:
    """Connected PostgreSQL store, closed on exit."""
    with PostgreSQLEngagementStore(get_settings()) as store:
        yield store


def build_bucketer() -> DayBucketer:
    return DayBucketer(get_settings().engagement.timezone)


def build_metrics_service(store: PostgreSQLEngagementStore) -> MetricsService:
    """MetricsService configured from settings."""
    settings = get_settings()
    return MetricsService(
        store,
        bucketer=build_bucketer(),
        retention_days=settings.engagement.retention_days,
    )


def print_json(payload: Any) -> None:
    """Print a JSON document; datetimes are rendered as ISO 8601."""
    print(json.dumps(payload, indent=2, default=str))


def fail(message: str) -> None:
    """Print an error line and exit with status 1."""
    print(f"{C.BRIGHT_RED}{I.CROSS} {message}{C.RESET}")
    raise typer.Exit(1)
