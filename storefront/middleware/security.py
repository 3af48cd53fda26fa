"""
Storefront Backend — Security Middleware
==========================================

What:  Request screening and hardening headers for every response.
Why:   Internet-facing shops receive constant automated probing (WordPress
       logins, leaked .env files, phpMyAdmin). Those requests should be
       dropped cheaply, logged, and never reach the API.
How:   Checks, in order:
           1. Method outside ALLOWED_METHODS           → 405
           2. Declared body above max_request_size     → 413 "Request too large"
           3. `../` or `..\\` in raw or decoded path    → 403 "Malicious request detected"
           4. Known exploit probe path                 → 404 "Not found"
       Suspicious proxy-override headers are logged but not blocked.
       Hardening headers are added to every response, including rejections.
"""

import logging
import re
from typing import Dict
from urllib.parse import unquote

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from storefront.config import settings
from storefront.dispatch.request_parser import client_ip, contains_traversal
from storefront.middleware.request_id import request_id_var
from storefront.schemas.envelope import error_body

logger = logging.getLogger(__name__)

EXPLOIT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/wp-admin",
        r"/wp-login",
        r"/\.env",
        r"/\.git",
        r"/phpmyadmin",
        r"/xmlrpc\.php",
        r"/config\.php",
        r"/admin\.php",
    )
]

SUSPICIOUS_HEADERS = ("x-forwarded-host", "x-original-url", "x-rewrite-url")

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' https://checkout.razorpay.com; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; "
        "connect-src 'self' https://api.razorpay.com; "
        "frame-src https://api.razorpay.com https://checkout.razorpay.com"
    ),
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rejection = self._screen(request)
        if rejection is not None:
            return self._harden(rejection)

        for header in SUSPICIOUS_HEADERS:
            if header in request.headers:
                logger.warning(
                    "Suspicious header %s=%r from %s on %s",
                    header,
                    request.headers[header],
                    client_ip(request.headers, request.client.host if request.client else None),
                    request.url.path,
                )

        response = await call_next(request)
        return self._harden(response)

    def _screen(self, request: Request):
        ip = client_ip(request.headers, request.client.host if request.client else None)
        rid = request_id_var.get("")

        if request.method.upper() not in settings.allowed_methods_list:
            return JSONResponse(
                status_code=405,
                content=error_body("method_not_allowed", "Method not allowed", request_id=rid),
                headers={"Allow": ", ".join(settings.allowed_methods_list)},
            )

        declared = request.headers.get("content-length", "")
        if declared.strip().isdigit() and int(declared) > settings.max_request_size:
            logger.warning("Oversized request from %s: %s bytes", ip, declared)
            return JSONResponse(
                status_code=413,
                content=error_body("request_too_large", "Request too large", request_id=rid),
            )

        raw = request.scope.get("raw_path") or b""
        raw_path = raw.decode("latin-1") if raw else request.url.path
        if contains_traversal(raw_path) or contains_traversal(unquote(raw_path)):
            logger.warning("Path traversal attempt from %s: %s", ip, raw_path)
            return JSONResponse(
                status_code=403,
                content=error_body("forbidden", "Malicious request detected", request_id=rid),
            )

        path = request.url.path
        if any(pattern.search(path) for pattern in EXPLOIT_PATTERNS):
            logger.warning("Blocked exploit probe from %s: %s", ip, path)
            return JSONResponse(
                status_code=404,
                content=error_body("not_found", "Not found", request_id=rid),
            )

        return None

    @staticmethod
    def _harden(response: Response) -> Response:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
