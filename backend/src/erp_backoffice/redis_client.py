"""Shared Redis connection for rate limiting and idempotency.

Redis is optional: when it cannot be reached, get_redis_client() returns
None and callers degrade to pass-through behaviour. After a failed
connection attempt no new attempt is made for REDIS_RETRY_BACKOFF_SECONDS.
"""

import logging
import time
from typing import Optional

from redis import Redis, RedisError

from .config import get_settings

logger = logging.getLogger(__name__)

_client: Optional[Redis] = None
_retry_at: float = 0.0


def get_redis_client() -> Optional[Redis]:
    """Return a connected client, or None when Redis is unavailable."""
    global _client, _retry_at
    if _client is not None:
        return _client
    if time.monotonic() < _retry_at:
        return None

    cfg = get_settings()
    try:
        client = Redis.from_url(
            cfg.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )
        client.ping()
    except RedisError as e:
        _retry_at = time.monotonic() + cfg.REDIS_RETRY_BACKOFF_SECONDS
        logger.warning(
            f"Redis unavailable, continuing without it for {cfg.REDIS_RETRY_BACKOFF_SECONDS}s: {e}"
        )
        return None

    _client = client
    return _client


def reset_redis_client() -> None:
    """Drop the cached client and any pending backoff (tests, failover)."""
    global _client, _retry_at
    _client = None
    _retry_at = 0.0
