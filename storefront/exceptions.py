"""
Storefront Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions, one per failure class the API reports.
Why:   Services raise meaningful errors without knowing about HTTP; the global
       handlers in main.py translate them into status codes and JSON bodies.
How:   Every exception carries a client-safe `message` and a `context` dict.
       Context is logged server-side and returned as `details` only for
       client-side (4xx) errors.
Who:   Raised by services, guards, and the dispatch layer.

Exception Hierarchy:
    StorefrontError (base)
    ├── ValidationError            → 400 Bad Request
    ├── SignatureVerificationError → 400 Bad Request
    ├── AuthenticationError        → 401 Unauthorized
    │   └── TokenError             → 401 Unauthorized
    ├── AuthorizationError         → 403 Forbidden
    ├── NotFoundError              → 404 Not Found
    ├── ConflictError              → 409 Conflict
    ├── RouterError                → status chosen at raise time (400/404/405/413)
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── ConfigurationError         → 500 Internal Server Error
    └── DatabaseError              → 500 Internal Server Error
"""

from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """
    Base exception for all Storefront application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(StorefrontError):
    """
    Raised when client input fails validation.

    `errors` holds per-field problems as [{"field": ..., "message": ...}], the
    shape the storefront frontend renders next to form inputs.
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        if errors:
            ctx["errors"] = errors
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors or []


class SignatureVerificationError(StorefrontError):
    """Raised when an HMAC signature on a payment callback or webhook does not match."""

    status_code = 400
    error_code = "invalid_signature"

    def __init__(
        self,
        message: str = "Invalid signature",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(StorefrontError):
    """
    Raised when the caller's identity cannot be established.

    When:    Missing/invalid bearer token, wrong credentials, revoked refresh token.
    HTTP:    401 Unauthorized
    """

    status_code = 401
    error_code = "authentication_error"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TokenError(AuthenticationError):
    """
    Raised by the token service when a JWT fails verification.

    The message names the failing check ("Token has expired", "Invalid token
    signature", ...) so clients can decide whether to refresh or re-login.
    """

    error_code = "invalid_token"

    def __init__(
        self,
        message: str = "Invalid token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(StorefrontError):
    """Raised when an authenticated caller lacks the role for an operation (403)."""

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "Insufficient permissions",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(StorefrontError):
    """
    Raised when a requested resource does not exist.

    Services convert SQLAlchemy's `None` results into this so HTTP concerns
    stay out of the query code.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(StorefrontError):
    """Raised when a write would violate a uniqueness rule (duplicate email)."""

    status_code = 409
    error_code = "conflict"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RouterError(StorefrontError):
    """
    Raised by the dispatch layer before a request reaches an endpoint.

    Unlike the other exceptions the status is chosen at raise time:
        400  path traversal in the request path
        404  no route for the path
        405  path exists under a different method
        413  declared body larger than max_request_size
    """

    error_code = "router_error"

    _CODES = {
        400: "bad_request",
        404: "not_found",
        405: "method_not_allowed",
        413: "request_too_large",
    }

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.status_code = status_code
        self.error_code = self._CODES.get(status_code, "router_error")


class ConfigurationError(StorefrontError):
    """
    Raised when a required secret is not configured, e.g. an empty JWT key.

    The request fails with a generic 500; nothing is signed or accepted.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "The server is not configured to handle this request.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StorefrontError):
    """
    Raised when database operations fail unexpectedly.

    The client always sees a generic message; the SQL error is logged only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(StorefrontError):
    """Raised when a client exceeds the per-IP request budget (429 + Retry-After)."""

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 900,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
