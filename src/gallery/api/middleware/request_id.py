"""Request ID and access logging middleware for the gallery API.

Every response carries an X-Request-Id header. A non-empty incoming header is
reused so that a proxy's correlation id flows through to our log lines.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to every request and log one line per response.

    Behavior:
    - Header X-Request-Id present and non-blank => use it (stripped).
    - Else generate uuid4.
    - Store on request.state.request_id and echo in the response header.
    - Log method, path, status and elapsed milliseconds at INFO.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Process the request and attach request ID."""
        incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
        request_id = incoming or str(uuid.uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            extra={"request_id": request_id},
        )
        return response
