"""
Storefront Backend — API Meta Routes
======================================

What:  GET /api/docs lists every endpoint in the dispatch table with its
       guards; POST /api/validate checks a described request against the
       API's conventions without executing it.
Who:   Frontend developers and API consumers wiring up a client.
"""

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from storefront import __version__
from storefront.config import settings
from storefront.dispatch import route_table
from storefront.schemas.envelope import success_body

router = APIRouter(prefix="/api", tags=["Meta"])

BODY_METHODS = ("POST", "PUT", "PATCH")


class RequestDescription(BaseModel):
    endpoint: str = Field(default="", description="Path, e.g. /api/auth/login")
    method: str = Field(default="GET")
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def validate_request_description(
    endpoint: str,
    method: str,
    headers: Optional[Dict[str, str]] = None,
    body: Any = None,
) -> Dict[str, Any]:
    """
    Report errors, warnings, and suggestions for a request a client intends to send.

    Errors make the request invalid (bad prefix, disallowed method, body that
    is a string but not JSON). Warnings flag things that usually fail later:
    an Authorization header without the Bearer scheme, or a body-bearing
    method without a JSON Content-Type.
    """
    headers = headers or {}
    method = (method or "").upper()
    result: Dict[str, Any] = {
        "endpoint": endpoint,
        "method": method,
        "valid": True,
        "errors": [],
        "warnings": [],
        "suggestions": [],
    }

    if not endpoint or not endpoint.startswith("/api/"):
        result["errors"].append("Endpoint must start with /api/")

    allowed = settings.allowed_methods_list
    if method not in allowed:
        result["errors"].append("Invalid HTTP method. Allowed: " + ", ".join(allowed))

    authorization = _header(headers, "Authorization")
    if authorization is not None and not authorization.startswith("Bearer "):
        result["warnings"].append('Authorization header should start with "Bearer "')

    if method in BODY_METHODS:
        content_type = _header(headers, "Content-Type") or ""
        if "application/json" not in content_type.lower():
            result["warnings"].append(f"Content-Type: application/json recommended for {method} requests")
        if body in (None, "", {}):
            result["warnings"].append(f"Request body is empty for {method} request")
        elif isinstance(body, str):
            try:
                json.loads(body)
            except ValueError as e:
                result["errors"].append(f"Invalid JSON in request body: {e}")

    result["valid"] = not result["errors"]
    if result["valid"]:
        match = route_table.match(method, endpoint.split("?", 1)[0])
        if match is None:
            result["suggestions"].append("No endpoint is registered for this method and path")
        else:
            result["suggestions"].append("Request format is valid")
            if "admin" in match.guards:
                result["suggestions"].append("This is an admin endpoint - send an admin access token")
            elif match.guards:
                result["suggestions"].append("This endpoint requires authentication")

    return result


@router.get("/docs", summary="Endpoint listing from the dispatch table")
async def api_docs():
    endpoints: List[Dict[str, Any]] = [
        {
            "method": definition.method,
            "path": definition.pattern,
            "handler": definition.handler,
            "guards": list(definition.guards),
        }
        for definition in route_table.definitions()
    ]
    endpoints.sort(key=lambda item: (item["path"], item["method"]))
    return success_body(
        {
            "name": "Storefront API",
            "version": __version__,
            "total_endpoints": len(endpoints),
            "endpoints": endpoints,
            "authentication": {
                "type": "Bearer",
                "header": "Authorization: Bearer <access_token>",
                "refresh": "/api/auth/refresh",
            },
        },
        "API documentation",
    )


@router.post("/validate", summary="Check a request description without executing it")
async def validate_request(description: RequestDescription):
    result = validate_request_description(
        description.endpoint, description.method, description.headers, description.body
    )
    return success_body(result, "Request is valid" if result["valid"] else "Request has errors")
