# ==============================================================================
# Valkey Cache Implementation
# ==============================================================================
"""
Valkey/Redis implementation of the Cache interface.

Plain values are JSON strings written with SETEX when a TTL is given; scored
indexes are sorted sets. The client retries timeouts and dropped connections
with redis-py's exponential backoff.
"""

import json
import logging

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from engagement.base import Cache
from engagement.utils.config import Settings, get_settings
from engagement.utils.retry import VALKEY_RETRIES

logger = logging.getLogger(__name__)


class ValkeyCache(Cache):
    """Cache backed by a Valkey (or Redis) server."""

    def __init__(
        self,
        url: str | None = None,
        socket_timeout: int = 10,
        retries: int | None = None,
        client: redis.Redis | None = None,
    ):
        """
        Initialize Valkey cache.

        Args:
            url: Connection URL. If None, uses settings.
            socket_timeout: Socket and connect timeout in seconds
            retries: Retries for transient failures (default: VALKEY_RETRIES)
            client: Pre-built client used instead of url (fakeredis in tests)
        """
        if client is not None:
            self._client = client
            return

        self._client = redis.from_url(
            url or get_settings().valkey.url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry=Retry(
                ExponentialBackoff(cap=32, base=1),
                retries=VALKEY_RETRIES if retries is None else retries,
            ),
            retry_on_error=[RedisTimeoutError, RedisConnectionError],
        )

    # ==========================================================================
    # Key-Value
    # ==========================================================================

    def get(self, key: str) -> dict | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring undecodable value at %s", key)
            return None

    def set(self, key: str, value: dict, ttl_seconds: int | None = None) -> None:
        payload = json.dumps(value)
        if ttl_seconds is None:
            self._client.set(key, payload)
        else:
            self._client.setex(key, ttl_seconds, payload)

    # ==========================================================================
    # Scored Indexes
    # ==========================================================================

    def index_add(self, index: str, member: str, score: float) -> None:
        self._client.zadd(index, {member: score})

    def index_trim(self, index: str, max_score: float) -> int:
        return self._client.zremrangebyscore(index, "-inf", max_score)

    def index_latest(self, index: str, limit: int) -> list[str]:
        if limit <= 0:
            return []
        return self._client.zrevrange(index, 0, limit - 1)

    def close(self) -> None:
        self._client.close()


def check_valkey_connection(settings: Settings | None = None) -> bool:
    """
    Ping Valkey with a 5 second timeout.

    Returns:
        True if the server answered
    """
    settings = settings or get_settings()
    try:
        client = redis.from_url(
            settings.valkey.url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        client.ping()
        client.close()
        return True
    except RedisError:
        return False
