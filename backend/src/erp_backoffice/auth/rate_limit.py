"""Sliding-window rate limiting for unauthenticated auth endpoints.

Each client (IP + User-Agent fingerprint) gets RATE_LIMIT_REQUESTS calls
per RATE_LIMIT_PERIOD seconds per endpoint. The window is a Redis sorted
set scored by request time. Without Redis no limit is applied.
"""

import hashlib
import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request
from redis import Redis, RedisError

from ..config import get_settings
from ..errors import RateLimitError
from ..redis_client import get_redis_client

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _client_identifier(request: Request) -> str:
    fingerprint = f"{get_client_ip(request) or 'unknown'}:{request.headers.get('User-Agent', '')}"
    return hashlib.sha256(fingerprint.encode()).hexdigest()[:32]


class RateLimiter:
    """Redis sorted-set sliding window."""

    def __init__(self, redis_client: Optional[Redis] = None,
                 max_requests: Optional[int] = None, period_seconds: Optional[int] = None):
        self._redis = redis_client
        self.max_requests = max_requests
        self.period_seconds = period_seconds

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis if self._redis is not None else get_redis_client()

    def _limits(self) -> tuple[int, int]:
        cfg = get_settings()
        return (
            self.max_requests if self.max_requests is not None else cfg.RATE_LIMIT_REQUESTS,
            self.period_seconds if self.period_seconds is not None else cfg.RATE_LIMIT_PERIOD,
        )

    def hit(self, identifier: str, endpoint: str) -> int:
        """Record a request and return seconds to wait (0 when allowed)."""
        client = self.redis
        if client is None:
            return 0

        max_requests, period = self._limits()
        key = f"rate_limit:{endpoint}:{identifier}"
        now = time.time()

        try:
            client.zremrangebyscore(key, 0, now - period)
            current = client.zcard(key)
            if current >= max_requests:
                oldest = client.zrange(key, 0, 0, withscores=True)
                if oldest:
                    return max(1, int(oldest[0][1] + period - now) + 1)
                return period

            client.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            client.expire(key, period)
        except RedisError as e:
            logger.warning(f"Rate limiter degraded, allowing request: {e}")
            return 0

        return 0


rate_limiter = RateLimiter()


def rate_limit(endpoint: str) -> Callable[[Request], None]:
    """Build a dependency that limits one endpoint.

    Example:
        @router.post("/login", dependencies=[Depends(rate_limit("login"))])
    """
    def dependency(request: Request) -> None:
        retry_after = rate_limiter.hit(_client_identifier(request), endpoint)
        if retry_after:
            logger.warning(
                "Rate limit exceeded",
                extra={"endpoint": endpoint, "ip_address": get_client_ip(request)}
            )
            raise RateLimitError(retry_after, "Too many requests. Please try again later.")

    return dependency
