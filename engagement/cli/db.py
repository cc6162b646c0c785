# ==============================================================================
# Database Commands
# ==============================================================================
"""
Schema management commands for the engagement pipeline CLI.
"""

from typing import Annotated

import psycopg2
import typer

from engagement.cli.shared import C, I, fail
from engagement.infrastructure.repositories import check_postgresql_connection
from engagement.utils.config import get_settings
from engagement.utils.db import ensure_schema, reset_schema


def db_init() -> None:
    """Create the database and schema if they do not exist."""
    settings = get_settings()
    schema_name = settings.postgres.schema_name

    print(f"  Initializing schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        created = ensure_schema(settings)
    except (RuntimeError, psycopg2.Error) as e:
        fail(str(e))

    if created:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' created{C.RESET}")
    else:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' already exists{C.RESET}")


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the schema (deletes all engagement data).

    Examples:
        engagement db reset       # With confirmation prompt
        engagement db reset -y    # Skip confirmation
    """
    settings = get_settings()
    schema_name = settings.postgres.schema_name

    if not check_postgresql_connection(settings):
        fail("Cannot connect to PostgreSQL")

    if not confirm:
        typer.confirm(
            f"This will DELETE all data in schema '{schema_name}'. Are you sure?",
            abort=True,
        )

    print(f"  Resetting PostgreSQL schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        reset_schema(settings)
    except (RuntimeError, psycopg2.Error) as e:
        fail(str(e))
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' reset{C.RESET}")
