"""Idempotency-Key support for unsafe requests.

A POST, PUT or PATCH carrying ``Idempotency-Key`` is executed once; a
retry with the same key, method, path and body replays the stored status
code and body instead of running the handler again.

Stored in Redis under ``idempotency:<key>:<fingerprint>`` for
IDEMPOTENCY_TTL_SECONDS, where the fingerprint hashes the caller's
Authorization header with the method, path and body, so two callers reusing
a key never see each other's responses. Redis calls run in the threadpool;
when Redis is unavailable, requests pass through unchanged.
"""

import hashlib
import json
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from redis import Redis, RedisError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from .config import get_settings
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotent-Replayed"
IDEMPOTENT_METHODS = frozenset({"POST", "PUT", "PATCH"})
MIN_KEY_LENGTH = 16
MAX_KEY_LENGTH = 128


def request_fingerprint(method: str, path: str, body: bytes, principal: str = "") -> str:
    digest = hashlib.sha256()
    digest.update(hashlib.sha256(principal.encode()).digest())
    digest.update(method.encode())
    digest.update(path.encode())
    digest.update(body)
    return digest.hexdigest()


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """Replay stored responses for repeated Idempotency-Key requests.

    Only responses below 500 are stored, so a request that failed on the
    server side can be retried with the same key.
    """

    def __init__(self, app, redis_factory: Optional[Callable[[], Optional[Redis]]] = None):
        super().__init__(app)
        self.redis_factory = redis_factory

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in IDEMPOTENT_METHODS:
            return await call_next(request)

        key = request.headers.get(IDEMPOTENCY_HEADER)
        if not key:
            return await call_next(request)

        if not MIN_KEY_LENGTH <= len(key) <= MAX_KEY_LENGTH:
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "error": {
                        "code": "BAD_REQUEST",
                        "message": (
                            f"Idempotency-Key must be between {MIN_KEY_LENGTH} "
                            f"and {MAX_KEY_LENGTH} characters"
                        ),
                    },
                },
            )

        redis = await run_in_threadpool(self.redis_factory or get_redis_client)
        if redis is None:
            return await call_next(request)

        body = await request.body()
        fingerprint = request_fingerprint(
            request.method, request.url.path, body, request.headers.get("Authorization", "")
        )
        redis_key = f"idempotency:{key}:{fingerprint}"

        try:
            cached = await run_in_threadpool(redis.get, redis_key)
        except RedisError as e:
            logger.warning(f"Idempotency lookup failed, passing through: {e}")
            return await call_next(request)

        if cached:
            stored = json.loads(cached)
            logger.info("Replaying idempotent response", extra={"path": request.url.path})
            return Response(
                content=stored["body"],
                status_code=stored["status_code"],
                media_type=stored.get("media_type") or "application/json",
                headers={REPLAY_HEADER: "true"},
            )

        response = await call_next(request)
        if response.status_code >= 500:
            return response

        content = b""
        async for chunk in response.body_iterator:
            content += chunk if isinstance(chunk, bytes) else chunk.encode()

        try:
            await run_in_threadpool(
                redis.set,
                redis_key,
                json.dumps({
                    "status_code": response.status_code,
                    "body": content.decode("utf-8", errors="replace"),
                    "media_type": response.headers.get("content-type"),
                }),
                ex=get_settings().IDEMPOTENCY_TTL_SECONDS,
            )
        except RedisError as e:
            logger.warning(f"Failed to store idempotent response: {e}")

        return Response(
            content=content,
            status_code=response.status_code,
            headers=dict(response.headers),
        )
