"""
Storefront Backend — Dispatch Middleware
==========================================

What:  Screens every /api/ request against the route table before FastAPI
       routes it.
Why:   Clients get the storefront error envelope for unknown endpoints
       (with the list of routes that do exist for their method) and a real
       405 + Allow header for a wrong method, instead of FastAPI's bare
       {"detail": "Not Found"}.
How:   1. RequestParser validates and sanitizes the request (400 / 413)
       2. RouteTable.match() resolves handler, params, and guards
       3. No match: 405 if another method matches the path, else 404
       4. Match: parsed request and route stored on request.state
       5. After the endpoint: X-Token-Refresh-Suggested echoed if a guard
          saw a token close to expiry
When:  Innermost custom middleware; runs after security screening.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from storefront.dispatch.request_parser import RequestParser, is_api_request, request_parser
from storefront.dispatch.route_table import RouteTable
from storefront.exceptions import RouterError
from storefront.middleware.request_id import request_id_var
from storefront.schemas.envelope import error_body

logger = logging.getLogger(__name__)


def router_error_response(exc: RouterError, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message, exc.context, request_id_var.get("")),
        headers=headers,
    )


class DispatchMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, route_table: RouteTable, parser: RequestParser = None, **kwargs):
        super().__init__(app, **kwargs)
        self.route_table = route_table
        self.parser = parser or request_parser

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not is_api_request(request.url.path) or request.method == "OPTIONS":
            return await call_next(request)

        try:
            parsed = self.parser.parse(request)
        except RouterError as exc:
            logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.message)
            return router_error_response(exc)

        # HEAD is served by the GET handler
        lookup_method = "GET" if parsed.method == "HEAD" else parsed.method
        match = self.route_table.match(lookup_method, parsed.path)

        if match is None:
            allowed = self.route_table.allowed_methods(parsed.path)
            if allowed:
                exc = RouterError(
                    "Method not allowed",
                    405,
                    context={"path": parsed.path, "method": parsed.method, "allowed": allowed},
                )
                return router_error_response(exc, headers={"Allow": ", ".join(allowed)})
            exc = RouterError(
                "API endpoint not found",
                404,
                context={
                    "path": parsed.path,
                    "method": parsed.method,
                    "available_routes": self.route_table.available_routes(lookup_method),
                },
            )
            return router_error_response(exc)

        request.state.parsed = parsed
        request.state.route = match

        response = await call_next(request)

        if getattr(request.state, "token_refresh_suggested", False):
            response.headers["X-Token-Refresh-Suggested"] = "true"

        return response
