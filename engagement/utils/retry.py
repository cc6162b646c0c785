# ==============================================================================
# Retry Policies
# ==============================================================================
"""
tenacity retry decorators for database setup and store connects.

Two policies share one exponential backoff (1s doubling, capped at 32s):

    retry_standard  10 attempts, ~60s   db init / reset before a sweep
    retry_light      3 attempts, ~7s    store connect inside a sweep

Streaming API calls are not wrapped; a connection whose fetch fails is picked
up again by the next scheduled sweep.
"""

import logging
from typing import Tuple, Type

import psycopg2
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

RETRY_ATTEMPTS = 10
RETRY_ATTEMPTS_LIGHT = 3
BACKOFF_MIN_SECONDS = 1
BACKOFF_MAX_SECONDS = 32

# Passed to redis-py's own Retry in ValkeyCache
VALKEY_RETRIES = 3

# Transient psycopg2 failures (server restart, dropped socket)
POSTGRES_RETRY_EXCEPTIONS = (
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
)

ExceptionTypes = Tuple[Type[Exception], ...]


def log_retry_attempt(logger: logging.Logger, attempts: int = RETRY_ATTEMPTS):
    """Build a tenacity ``before_sleep`` hook that logs each failed attempt."""

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Attempt %d/%d failed, backing off: %s",
            state.attempt_number,
            attempts,
            error,
        )

    return _before_sleep


def _with_backoff(attempts: int, exception_types: ExceptionTypes, logger: logging.Logger):
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=BACKOFF_MIN_SECONDS, max=BACKOFF_MAX_SECONDS),
        retry=retry_if_exception_type(exception_types),
        before_sleep=log_retry_attempt(logger, attempts),
        reraise=True,
    )


def retry_standard(exception_types: ExceptionTypes, logger: logging.Logger):
    """
    Long retry for one-off setup against a database that may still be starting.

    Example:
        @retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
        def check_schema_exists(settings=None):
            ...
    """
    return _with_backoff(RETRY_ATTEMPTS, exception_types, logger)


def retry_light(exception_types: ExceptionTypes, logger: logging.Logger):
    """Short retry for connects made while a sweep is running."""
    return _with_backoff(RETRY_ATTEMPTS_LIGHT, exception_types, logger)
