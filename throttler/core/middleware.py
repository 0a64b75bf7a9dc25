"""Request ID middleware.

Accepts an incoming correlation header (``LOG_REQUEST_ID_HEADER``, default
``X-Request-ID``) or generates a UUID, exposes it to logging through
contextvars, and echoes it on the response with the request duration.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from throttler.core.config import settings
from throttler.core.logging import clear_request_id, set_request_id

MAX_REQUEST_ID_LENGTH = 128


def _accept_request_id(candidate: str | None) -> str:
    """Keep a client-supplied id only if it is short and printable."""
    if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
        return candidate
    return str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next) -> Response:
    header_name = settings.log.request_id_header
    request_id = _accept_request_id(request.headers.get(header_name))
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
