"""Shared FastAPI middleware."""

from __future__ import annotations

import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """
    Reject request bodies larger than MAX_REQUEST_BODY_BYTES.

    Invoice payloads are small JSON documents; anything bigger is refused
    before it reaches validation. Only methods that carry a body are checked
    so the event stream is never buffered.
    """

    BODY_METHODS = {"POST", "PUT", "PATCH"}

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        if request.method not in self.BODY_METHODS:
            return await call_next(request)

        limit = int(get_settings().MAX_REQUEST_BODY_BYTES)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > limit:
                    logger.warning(f"Rejected {request.url.path}: content-length {content_length} > {limit}")
                    return JSONResponse({"detail": "Payload too large."}, status_code=413)
            except ValueError:
                return JSONResponse({"detail": "Invalid Content-Length header."}, status_code=400)

        # Chunked uploads have no content-length; Starlette caches the body for the handler.
        body = await request.body()
        if body and len(body) > limit:
            return JSONResponse({"detail": "Payload too large."}, status_code=413)

        return await call_next(request)
