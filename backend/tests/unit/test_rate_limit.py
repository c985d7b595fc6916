"""Unit tests for the Redis sliding-window rate limiter"""

import time
from unittest.mock import MagicMock

import pytest
from redis import RedisError

from erp_backoffice.auth.rate_limit import RateLimiter, rate_limit
from erp_backoffice.errors import RateLimitError


@pytest.fixture
def redis_mock():
    client = MagicMock()
    client.zcard.return_value = 0
    return client


def test_allows_request_under_limit(redis_mock):
    limiter = RateLimiter(redis_mock, max_requests=5, period_seconds=60)

    assert limiter.hit("client-1", "login") == 0

    key = "rate_limit:login:client-1"
    redis_mock.zremrangebyscore.assert_called_once()
    assert redis_mock.zadd.call_args.args[0] == key
    redis_mock.expire.assert_called_once_with(key, 60)


def test_rejects_at_limit_with_retry_after(redis_mock):
    redis_mock.zcard.return_value = 5
    redis_mock.zrange.return_value = [("entry", time.time() - 20)]
    limiter = RateLimiter(redis_mock, max_requests=5, period_seconds=60)

    retry_after = limiter.hit("client-1", "login")

    assert 40 <= retry_after <= 42
    redis_mock.zadd.assert_not_called()


def test_rejects_with_full_period_when_window_unreadable(redis_mock):
    redis_mock.zcard.return_value = 10
    redis_mock.zrange.return_value = []

    assert RateLimiter(redis_mock, max_requests=5, period_seconds=60).hit("c", "login") == 60


def test_redis_error_allows_request(redis_mock):
    redis_mock.zcard.side_effect = RedisError("connection reset")

    assert RateLimiter(redis_mock, max_requests=1, period_seconds=60).hit("c", "login") == 0


def test_without_redis_no_limit():
    # get_redis_client is patched to None by the autouse fixture
    assert RateLimiter(max_requests=1, period_seconds=60).hit("c", "login") == 0


def test_dependency_raises_rate_limit_error(monkeypatch):
    limiter = MagicMock()
    limiter.hit.return_value = 30
    monkeypatch.setattr("erp_backoffice.auth.rate_limit.rate_limiter", limiter)

    request = MagicMock()
    request.headers = {"User-Agent": "pytest", "X-Forwarded-For": "198.51.100.9, 10.0.0.1"}

    with pytest.raises(RateLimitError) as exc_info:
        rate_limit("forgot_password")(request)

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers["Retry-After"] == "30"
    assert limiter.hit.call_args.args[1] == "forgot_password"
