"""
Storefront Backend — Access Log Middleware
============================================

What:  One log line per request: method, path, status, duration, request
       ID, client IP, and the authenticated user when there is one.
Why:   Login failures, rejected webhooks, and slow checkouts are diagnosed
       from these lines; the request ID ties them to handler logs.
How:   Times the downstream call with perf_counter and logs to
       "storefront.access" at a level chosen by status class
       (5xx ERROR, 4xx WARNING, otherwise INFO). Query strings and bodies
       are never logged: they can carry tokens (?token=) and passwords.
When:  Runs inside RequestIDMiddleware so the ID is already set.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from storefront.dispatch.request_parser import client_ip as resolve_client_ip
from storefront.middleware.request_id import request_id_var

logger = logging.getLogger("storefront.access")

QUIET_PATHS = {"/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        ip = resolve_client_ip(request.headers, request.client.host if request.client else None)
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        user = getattr(request.state, "user", None)
        user_id = getattr(user, "user_id", None)

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s user=%s",
            method,
            path,
            status,
            duration_ms,
            rid,
            ip,
            user_id if user_id is not None else "-",
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": ip,
                "user_id": user_id,
            },
        )

        return response
