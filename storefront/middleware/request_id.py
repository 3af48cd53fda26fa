"""
Storefront Backend — Request ID Middleware
============================================

What:  Gives every request a short correlation ID and returns it in X-Request-ID.
Why:   Error bodies carry the ID, so a customer's support ticket can be
       matched to the exact log lines of the failed checkout or login.
How:   Reuses a client-supplied X-Request-ID (the frontend generates one
       per user action) or creates an 8-char UUID prefix, stores it in a
       ContextVar for loggers and handlers, and echoes it on the response.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client IDs end up in logs; anything else is replaced
_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get("X-Request-ID", "")
        rid = supplied if _SAFE_ID.match(supplied) else str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
