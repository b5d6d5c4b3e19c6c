"""
Per-request logging.

Every response carries an X-Request-ID (the caller's, or a fresh one) and
one "[HTTP]" line is logged with its status and duration.
"""

import logging
import time
import uuid
from typing import Awaitable, Callable, Optional

from fastapi import Request, Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def timing_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    started = time.perf_counter()
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    status_code = 500
    response: Optional[Response] = None

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception:
        logger.exception(
            "[HTTP %s] Unhandled error on %s %s",
            request_id, request.method, request.url.path,
        )
        raise
    finally:
        # SSE responses are timed until headers are sent, not until the stream closes
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "[HTTP %s] %s %s -> %s in %.1f ms",
            request_id, request.method, request.url.path, status_code, elapsed_ms,
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response
