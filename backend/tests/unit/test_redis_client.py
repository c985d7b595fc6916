"""Unit tests for the shared Redis connection and its reconnect backoff"""

import pytest
from redis import ConnectionError as RedisConnectionError

from erp_backoffice import redis_client


class FakeRedisClass:
    """Stands in for redis.Redis; counts connection attempts."""
    attempts = 0
    reachable = False

    @classmethod
    def from_url(cls, url, **kwargs):
        cls.attempts += 1
        return cls()

    def ping(self):
        if not type(self).reachable:
            raise RedisConnectionError("Connection refused")
        return True


@pytest.fixture
def fake_redis(monkeypatch):
    FakeRedisClass.attempts = 0
    FakeRedisClass.reachable = False
    monkeypatch.setattr(redis_client, "Redis", FakeRedisClass)
    redis_client.reset_redis_client()
    yield FakeRedisClass
    redis_client.reset_redis_client()


@pytest.fixture
def clock(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(redis_client.time, "monotonic", lambda: now[0])
    return now


def test_failed_connection_backs_off(fake_redis, clock):
    assert redis_client.get_redis_client() is None
    assert redis_client.get_redis_client() is None

    assert fake_redis.attempts == 1


def test_retries_after_backoff(fake_redis, clock):
    redis_client.get_redis_client()
    fake_redis.reachable = True

    clock[0] += 31

    assert isinstance(redis_client.get_redis_client(), FakeRedisClass)
    assert fake_redis.attempts == 2


def test_connected_client_is_cached(fake_redis, clock):
    fake_redis.reachable = True

    first = redis_client.get_redis_client()

    assert redis_client.get_redis_client() is first
    assert fake_redis.attempts == 1
