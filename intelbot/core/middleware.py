"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id:
- the configured request-id header when the caller sends one
- else the GitHub ``X-GitHub-Delivery`` id (webhook deliveries)
- else a fresh UUID

The id is stored in contextvars for log correlation, echoed back in the
response headers, and cleared once the request completes.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from intelbot.core.logging import clear_request_id, set_request_id

GITHUB_DELIVERY_HEADER = "X-GitHub-Delivery"
DEFAULT_REQUEST_ID_HEADER = "X-Request-ID"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and a duration header to every response."""

    app_settings = getattr(request.app.state, "settings", None)
    header_name = app_settings.log.request_id_header if app_settings else DEFAULT_REQUEST_ID_HEADER

    request_id = (
        request.headers.get(header_name)
        or request.headers.get(GITHUB_DELIVERY_HEADER)
        or str(uuid.uuid4())
    )
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
