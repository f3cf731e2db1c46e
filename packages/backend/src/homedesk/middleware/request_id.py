"""Request ID middleware — unique ID per request for tracing.

Learn: Every HTTP request gets a UUID, either from the incoming
X-Request-ID header (for distributed tracing) or auto-generated.
The ID is bound to structlog's contextvars, so every log line written
while handling the request (including automation.* lines from rules the
request triggered) carries it. It is echoed back in the response header.

WebSocket upgrades pass straight through: a socket lives far longer than
a request and logs under its business_id / visitor_id instead.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
