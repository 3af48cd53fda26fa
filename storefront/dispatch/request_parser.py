"""
Storefront Backend — Request Parsing & Classification
=======================================================

What:  Turns an incoming Starlette request into a validated ParsedRequest and
       classifies paths as api / asset / frontend.
Why:   Path traversal and oversized bodies must be rejected before any
       endpoint (or body read) happens, and handlers should see query values
       that are already safe to echo back.
How:   The raw path is URL-decoded and normalised, then screened for
       `../` and `..\\`. Content-Length is compared with max_request_size.
       Header names are canonicalised. Query values are sanitized for
       /api/ paths.
Who:   DispatchMiddleware.
"""

import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, Mapping, Optional
from urllib.parse import unquote

from starlette.requests import Request

from storefront.config import settings
from storefront.exceptions import RouterError
from storefront.services.sanitizer import input_sanitizer

API_PREFIX = "/api/"

ASSET_DIRECTORIES = ("/assets/", "/uploads/", "/css/", "/js/", "/images/", "/fonts/", "/src/")

STATIC_EXTENSIONS = frozenset({
    "html", "htm", "css", "js", "json", "xml",
    "jpg", "jpeg", "png", "gif", "svg", "webp", "ico",
    "woff", "woff2", "ttf", "eot", "otf",
    "pdf", "txt",
    "zip", "tar", "gz",
})

TRAVERSAL_SEQUENCES = ("../", "..\\")


def normalize_header_name(name: str) -> str:
    """
    Canonical header casing.

        HTTP_X_CUSTOM_HEADER → X-Custom-Header
        content-type         → Content-Type
    """
    if name.upper().startswith("HTTP_"):
        name = name[5:]
    segments = name.replace("_", "-").split("-")
    return "-".join(segment.capitalize() for segment in segments)


def normalize_path(raw_path: str) -> str:
    path = unquote(raw_path.split("?", 1)[0])
    return "/" + path.strip("/")


def contains_traversal(path: str) -> bool:
    return any(sequence in path for sequence in TRAVERSAL_SEQUENCES)


def is_api_request(path: str) -> bool:
    return path.startswith(API_PREFIX)


def is_static_asset(path: str) -> bool:
    if any(directory in path for directory in ASSET_DIRECTORIES):
        return True
    extension = PurePosixPath(path).suffix.lstrip(".").lower()
    return bool(extension) and extension in STATIC_EXTENSIONS


def is_frontend_route(path: str) -> bool:
    return not is_api_request(path) and not is_static_asset(path)


def classify_request_type(path: str) -> str:
    if is_api_request(path):
        return "api"
    if is_static_asset(path):
        return "asset"
    return "frontend"


def client_ip(headers: Mapping[str, str], peer: Optional[str]) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return peer or "unknown"


@dataclass
class ParsedRequest:
    request_id: str
    method: str
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    ip: str = "unknown"
    user_agent: str = "Unknown"
    content_length: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def request_type(self) -> str:
        return classify_request_type(self.path)


class RequestParser:
    def __init__(self, max_request_size: Optional[int] = None):
        self.max_request_size = max_request_size or settings.max_request_size

    def parse(self, request: Request) -> ParsedRequest:
        """
        Raises:
            RouterError(400): traversal sequence in the decoded path
            RouterError(413): declared Content-Length above the limit
        """
        raw_path = request.scope.get("raw_path")
        if raw_path:
            path = normalize_path(raw_path.decode("latin-1"))
        else:
            path = normalize_path(request.scope.get("path", "/"))

        if contains_traversal(path):
            raise RouterError(
                "Invalid path traversal detected", 400, context={"path": path}
            )

        declared = request.headers.get("content-length", "")
        content_length = int(declared) if declared.strip().isdigit() else 0
        if content_length > self.max_request_size:
            raise RouterError(
                "Request too large",
                413,
                context={"content_length": content_length, "limit": self.max_request_size},
            )

        headers = {normalize_header_name(k): v for k, v in request.headers.items()}
        query: Dict[str, Any] = dict(request.query_params)
        if is_api_request(path) and query:
            query = input_sanitizer.sanitize(query)

        peer = request.client.host if request.client else None
        return ParsedRequest(
            request_id=getattr(request.state, "request_id", ""),
            method=request.method.upper(),
            path=path,
            query=query,
            headers=headers,
            ip=client_ip(request.headers, peer),
            user_agent=request.headers.get("user-agent") or "Unknown",
            content_length=content_length,
        )


request_parser = RequestParser()
