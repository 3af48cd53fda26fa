"""
Storefront Backend — Rate Limiting Middleware
===============================================

What:  Per-IP sliding-window request limit with X-RateLimit-* headers.
Why:   Login, registration, and password-reset endpoints are credential
       stuffing targets; capping requests per client slows that down
       without any account lockout side effects.
How:   Each IP keeps a list of request timestamps. On every request the
       timestamps older than the window are dropped; if the remainder has
       reached the limit the request gets 429 with Retry-After, otherwise
       it is recorded and passed on.

Headers on every limited path:
    X-RateLimit-Limit      budget per window
    X-RateLimit-Remaining  requests left in the current window
    X-RateLimit-Reset      epoch seconds when the oldest counted request expires

Single-process only: state lives in this middleware instance. Multiple
workers each enforce their own budget.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from storefront.config import settings
from storefront.dispatch.request_parser import client_ip
from storefront.exceptions import RateLimitExceededError
from storefront.middleware.request_id import request_id_var
from storefront.schemas.envelope import error_body

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/api/health", "/api/docs", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        ip = client_ip(request.headers, request.client.host if request.client else None)
        now = time.time()
        window_start = now - self.window_seconds

        timestamps = [ts for ts in self._requests[ip] if ts > window_start]
        self._requests[ip] = timestamps

        if len(timestamps) >= self.max_requests:
            reset_at = timestamps[0] + self.window_seconds
            retry_after = int(reset_at - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                ip,
                len(timestamps),
                self.window_seconds,
            )
            # Exception handlers sit inside this middleware, so the 429 is built here
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.error_code, exc.message, exc.context, request_id_var.get("")),
                headers={
                    "Retry-After": str(exc.retry_after),
                    **self._headers(0, reset_at),
                },
            )

        timestamps.append(now)
        remaining = self.max_requests - len(timestamps)
        reset_at = timestamps[0] + self.window_seconds

        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        response = await call_next(request)
        response.headers.update(self._headers(remaining, reset_at))
        return response

    def _headers(self, remaining: int, reset_at: float) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(max(0, remaining)),
            "X-RateLimit-Reset": str(int(reset_at)),
        }

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        """Forget IPs with no request inside the window so the dict cannot grow unbounded."""
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]
        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
