"""
Storefront Backend — Response Envelope
========================================

What:  The JSON shapes every endpoint and middleware answers with.
Why:   The storefront frontend branches on `success` before reading `data`
       or `error`; responses built outside FastAPI's exception handlers
       (middleware rejections) must look identical to those built inside.
How:   Plain dict builders for middleware, Pydantic models for OpenAPI docs.

Shapes:
    success  {"success": true,  "message": ..., "data": ...}
    error    {"success": false, "error": code, "message": ..., "details": ..., "request_id": ...}
"""

import math
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def success_body(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def error_body(
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: str = "",
) -> Dict[str, Any]:
    """Every error body has the same five keys; `details` is null when there is nothing to add."""
    return {
        "success": False,
        "error": error,
        "message": message,
        "details": details or None,
        "request_id": request_id,
    }


def build_pagination(page: int, per_page: int, total: int) -> Dict[str, Any]:
    """
    Page metadata for list endpoints.

    total_pages is never below 1 so an empty result still reports page 1 of 1.
    next_page / prev_page are None at the edges.

    Example:
        build_pagination(2, 10, 35)
        → current_page 2, total_pages 4, next_page 3, prev_page 1
    """
    page = max(1, int(page))
    per_page = max(1, int(per_page))
    total = max(0, int(total))
    total_pages = max(1, math.ceil(total / per_page))
    has_next = page < total_pages
    has_prev = page > 1
    return {
        "current_page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next_page": has_next,
        "has_prev_page": has_prev,
        "next_page": page + 1 if has_next else None,
        "prev_page": page - 1 if has_prev else None,
    }


class SuccessResponse(BaseModel, Generic[T]):
    success: bool = Field(default=True)
    message: str = Field(default="Success", description="Human-readable outcome")
    data: Optional[T] = Field(default=None)


class ErrorResponse(BaseModel):
    """
    Error body returned for every 4xx/5xx.

    Example:
        {
            "success": false,
            "error": "validation_error",
            "message": "Validation failed",
            "details": {"errors": [{"field": "email", "message": "Email is required"}]},
            "request_id": "a1b2c3d4"
        }
    """

    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="connected or disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
