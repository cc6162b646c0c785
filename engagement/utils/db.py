# ==============================================================================
# Database Utilities
# ==============================================================================
"""
Database utility functions for the engagement pipeline.

Provides database creation, schema initialization and reset.
Includes retry logic with exponential backoff for network resilience.
"""

import logging
from pathlib import Path

import psycopg2
from jinja2 import Template

from engagement.utils.config import Settings, get_settings
from engagement.utils.paths import get_init_sql_path
from engagement.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_standard

logger = logging.getLogger(__name__)

# Table whose presence marks an initialized schema
MARKER_TABLE = "connections"


def get_schema_file() -> Path | None:
    """Get the schema init.sql path, or None if not found."""
    path = get_init_sql_path()
    if path.exists():
        return path
    cwd_path = Path.cwd() / "schema" / "init.sql"
    if cwd_path.exists():
        return cwd_path
    return None


def render_schema_sql(schema_name: str) -> str:
    """Render the schema SQL template with the given schema name."""
    schema_file = get_schema_file()
    if not schema_file:
        raise RuntimeError(
            "Schema file (schema/init.sql) not found. "
            "Make sure you're running from the project root."
        )

    template = Template(schema_file.read_text())
    return template.render(schema_name=schema_name)


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def ensure_database_exists(settings: Settings | None = None) -> None:
    """
    Ensure the target database exists, creating it if needed.

    Connects to the 'postgres' maintenance database to check and create the
    target database. Retries on connection errors (10 attempts, ~60 seconds).

    Raises:
        RuntimeError: If database creation fails
    """
    settings = settings or get_settings()
    pg = settings.postgres
    admin_conn_string = (
        f"postgresql://{pg.user}:{pg.password}@{pg.host}:{pg.port}/postgres"
        f"?sslmode={pg.sslmode}"
    )

    conn = psycopg2.connect(admin_conn_string, connect_timeout=5)
    # CREATE DATABASE cannot run inside a transaction
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (pg.database,))
            if cur.fetchone() is None:
                logger.info("Creating database '%s'...", pg.database)
                cur.execute(f'CREATE DATABASE "{pg.database}"')
                logger.info("Database '%s' created.", pg.database)
    except psycopg2.ProgrammingError as e:
        raise RuntimeError(f"Failed to ensure database exists: {e}") from e
    finally:
        conn.close()


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def check_schema_exists(settings: Settings | None = None) -> bool:
    """
    Check if the engagement schema has been initialized.

    Retries on connection errors (10 attempts, ~60 seconds).
    """
    settings = settings or get_settings()
    with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT EXISTS (
                    SELECT FROM information_schema.tables
                    WHERE table_schema = %s
                    AND table_name = %s
                )
                """,
                (settings.postgres.schema_name, MARKER_TABLE),
            )
            result = cur.fetchone()
    return bool(result[0]) if result else False


def ensure_schema(settings: Settings | None = None) -> bool:
    """
    Ensure database and schema exist, initializing if needed.

    Idempotent and safe to call multiple times.

    Returns:
        True if the schema was created, False if it already existed

    Raises:
        RuntimeError: If schema file not found or initialization fails
    """
    settings = settings or get_settings()
    ensure_database_exists(settings)

    if check_schema_exists(settings):
        return False

    schema_name = settings.postgres.schema_name
    logger.info("Initializing database schema '%s'...", schema_name)
    _execute_schema_sql(settings, render_schema_sql(schema_name))
    logger.info("Database schema '%s' initialized.", schema_name)
    return True


def reset_schema(settings: Settings | None = None) -> None:
    """
    Drop and recreate the database schema.

    WARNING: This deletes all data in the schema!
    """
    settings = settings or get_settings()
    schema_name = settings.postgres.schema_name
    logger.warning("Dropping schema '%s'", schema_name)
    _execute_schema_sql(
        settings,
        f"DROP SCHEMA IF EXISTS {schema_name} CASCADE;\n" + render_schema_sql(schema_name),
    )


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def _execute_schema_sql(settings: Settings, sql: str) -> None:
    try:
        with psycopg2.connect(settings.postgres.connection_string) as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
            conn.commit()
    except POSTGRES_RETRY_EXCEPTIONS:
        raise
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to apply schema: {e}") from e
