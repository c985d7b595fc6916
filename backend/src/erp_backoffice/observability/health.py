"""Dependency checks behind /health and /ready.

Redis only backs rate limiting and idempotency, both of which fall back to
pass-through, so losing it makes the service DEGRADED rather than UNHEALTHY.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import redis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from .logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None

    def as_dict(self) -> dict:
        return {"status": self.status.value, "message": self.message, "latency_ms": self.latency_ms}


def _timed(check: Callable[[], object]) -> float:
    started = time.perf_counter()
    check()
    return round((time.perf_counter() - started) * 1000, 2)


def check_database_health(db: Session) -> ComponentHealth:
    try:
        latency = _timed(lambda: db.execute(text("SELECT 1")))
    except SQLAlchemyError as exc:
        logger.error("Database check failed: %s", exc)
        return ComponentHealth(HealthStatus.UNHEALTHY, f"Database error: {exc}")
    return ComponentHealth(HealthStatus.HEALTHY, "Database reachable", latency)


def check_redis_health() -> ComponentHealth:
    client = redis.from_url(get_settings().REDIS_URL, socket_connect_timeout=1)
    try:
        latency = _timed(client.ping)
    except redis.RedisError as exc:
        logger.warning("Redis check failed: %s", exc)
        return ComponentHealth(HealthStatus.DEGRADED, f"Redis error: {exc}")
    return ComponentHealth(HealthStatus.HEALTHY, "Redis reachable", latency)


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """Worst component wins: UNHEALTHY over DEGRADED over HEALTHY."""
    statuses = {component.status for component in components.values()}
    for status in (HealthStatus.UNHEALTHY, HealthStatus.DEGRADED):
        if status in statuses:
            return status
    return HealthStatus.HEALTHY
