"""
Request ID middleware for correlation tracking

Accepts an inbound X-Request-ID or generates a UUID, stores it on
`request.state.request_id` and echoes it in the response headers.
"""
import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        logger.debug(f"Request {request_id}: {request.method} {request.url.path}")
        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response
