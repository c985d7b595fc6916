"""Request correlation middleware.

Accepts an incoming X-Request-ID (or mints one), makes it available to the
logging filter and echoes it back on the response.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger
from .request_context import generate_request_id, set_request_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        set_request_id(request_id)
        request.state.request_id = request_id

        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()
        logger.info("%s started", route)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s raised after %sms", route, _elapsed_ms(started),
                extra={"client_ip": request.client.host if request.client else None},
            )
            raise

        logger.info(
            "%s -> %s in %sms", route, response.status_code, _elapsed_ms(started),
            extra={"status_code": response.status_code},
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
