"""Request-scoped middleware for API requests."""

import re
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Caller-supplied IDs are echoed back only if they look like tracing IDs
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request ID to every request.

    Reuses a well-formed incoming X-Request-ID so a conversion can be traced
    across services; otherwise generates one.
    """

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get("X-Request-ID")
        if incoming and _REQUEST_ID_PATTERN.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
