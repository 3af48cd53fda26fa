"""
Storefront Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers, and routers,
       then fills the dispatch route table from the mounted routes.
Who:   uvicorn (`uvicorn storefront.main:app`), and tests via create_app().

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware Chain (outermost first):                         │
    │  CORS → Rate Limit → Request ID → Access Log → Security      │
    │       → Dispatch (route table: 404 / 405 / 413 / 400)        │
    │                                                              │
    │  Routes:                                                     │
    │  /api/auth/*   /api/admin/*   /api/payments/*                │
    │  /api/health   /api/docs      /api/validate                  │
    │                                                              │
    │  Exception Handlers:                                         │
    │  StorefrontError → its own status │ RequestValidation → 400  │
    │  HTTPException → envelope         │ Exception → 500          │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   logging, secret validation, route table summary
    Shutdown:  dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront import __version__
from storefront.config import settings
from storefront.database import dispose_engine
from storefront.dispatch import route_table
from storefront.dispatch.route_table import build_route_table
from storefront.exceptions import (
    AuthenticationError,
    DatabaseError,
    SignatureVerificationError,
    StorefrontError,
    ValidationError,
)
from storefront.middleware.dispatch import DispatchMiddleware
from storefront.middleware.logging import RequestLoggingMiddleware
from storefront.middleware.rate_limit import RateLimitMiddleware
from storefront.middleware.request_id import RequestIDMiddleware, request_id_var
from storefront.middleware.security import SecurityMiddleware
from storefront.routes import admin, auth, health, meta, payments
from storefront.schemas.envelope import error_body
from storefront.services.sanitizer import redact_sensitive

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ═══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Configure the root logger once at startup. Output goes to stdout for Docker."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ═══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ═══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Storefront Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /api/health and public routes still work, and
        # signature checks fail closed without their secrets.
        logger.error("Configuration error: %s", str(e))

    logger.info("Dispatch table: %d API routes", len(route_table))
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Storefront Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ═══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def _error_response(
    exc: StorefrontError, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    # 5xx context is for the logs only
    details = exc.context if exc.status_code < 500 else None
    message = exc.message if exc.status_code < 500 else "An internal error occurred. Please try again later."
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, message, details, request_id_var.get("")),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to the error envelope.

    Handler hierarchy:
        ValidationError             → 400, field errors in details.errors
        SignatureVerificationError  → 400, logged as a security event
        AuthenticationError         → 401 + WWW-Authenticate (TokenError included)
        DatabaseError               → 500, generic message
        StorefrontError (base)      → exc.status_code (403, 404, 409, RouterError codes)
        RequestValidationError      → 400, pydantic errors flattened to {field, message}
        HTTPException               → its status, enveloped
        Exception (fallback)        → 500
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        return _error_response(exc)

    @app.exception_handler(SignatureVerificationError)
    async def handle_signature_error(request: Request, exc: SignatureVerificationError):
        rid = request_id_var.get("")
        logger.warning(
            "[%s] Signature rejected on %s: %s | Context: %s",
            rid,
            request.url.path,
            exc.message,
            redact_sensitive(exc.context),
        )
        return _error_response(exc)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(exc, headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(exc)

    @app.exception_handler(StorefrontError)
    async def handle_storefront_error(request: Request, exc: StorefrontError):
        rid = request_id_var.get("")
        log_level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            log_level,
            "[%s] %s on %s %s: %s",
            rid,
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
        )
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]) or "body",
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        return _error_response(ValidationError("Validation failed", errors=errors))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("http_error", str(exc.detail), None, request_id_var.get("")),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
                None,
                rid,
            ),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Application Factory
# ═══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront API",
        description=(
            "E-commerce backend core: customer and admin authentication with JWT, "
            "bcrypt password storage, and HMAC-verified Razorpay callbacks."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: Dispatch is innermost, CORS outermost.
    app.add_middleware(DispatchMiddleware, route_table=route_table)
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=settings.allowed_methods_list,
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "X-Token-Refresh-Suggested",
        ],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(payments.router)
    app.include_router(health.router)
    app.include_router(meta.router)

    build_route_table(app, route_table)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
