"""Request-scoped middleware for API requests."""

import re
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-ID"

# Upstream proxies may assign the id; accept it only if it is short and inert
_INBOUND_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

_current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


def current_request_id() -> str | None:
    """Id of the request being handled, or None outside a request."""
    return _current_request_id.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID to every request and echoes it in the response."""

    async def dispatch(self, request: Request, call_next):
        inbound = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = inbound if _INBOUND_ID_RE.match(inbound) else str(uuid4())
        request.state.request_id = request_id
        token = _current_request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _current_request_id.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
