"""
Storefront Backend — Authentication Guards
============================================

What:  FastAPI dependencies that authenticate a request from its JWT and
       enforce the role hierarchy.
Why:   Guards declared on a route are visible to the dispatch table (which
       lists them in /api/docs) and run only for the routes that need them.
How:   AuthGuard instances are callables; FastAPI injects the Request, the
       guard extracts the token (Bearer header, bare header, X-Auth-Token,
       X-Access-Token, ?token=), verifies it as an access token, checks the
       role, and stores the caller on request.state.user.
Who:   Route modules: `Depends(require_auth)` / `Depends(require_admin)`.

Role hierarchy:
    guest (0) < customer (1) < moderator (2) < admin (3)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Request

from storefront.config import settings
from storefront.exceptions import AuthenticationError, AuthorizationError, TokenError
from storefront.services.token_service import extract_token, seconds_until_expiry, token_service

logger = logging.getLogger(__name__)

ROLE_HIERARCHY: Dict[str, int] = {
    "guest": 0,
    "customer": 1,
    "moderator": 2,
    "admin": 3,
}


def has_role(user_role: Optional[str], required_role: str) -> bool:
    """Unknown roles rank as guest; an unknown required role can never be met."""
    user_level = ROLE_HIERARCHY.get(user_role or "guest", 0)
    required_level = ROLE_HIERARCHY.get(required_role)
    if required_level is None:
        return False
    return user_level >= required_level


@dataclass
class AuthenticatedUser:
    user_id: int
    email: str
    role: str = "customer"
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def can_access_resource(user: Optional[AuthenticatedUser], owner_id: Any) -> bool:
    """Admins may touch anything; everyone else only rows they own."""
    if user is None:
        return False
    if user.is_admin:
        return True
    return str(user.user_id) == str(owner_id)


class AuthGuard:
    """
    Dependency that authenticates the caller and optionally requires a role.

    Raises:
        AuthenticationError (401): no token, or the token fails verification
        AuthorizationError (403): role below `minimum_role`
    """

    def __init__(self, name: str, minimum_role: Optional[str] = None):
        self.name = name
        self.minimum_role = minimum_role

    async def __call__(self, request: Request) -> AuthenticatedUser:
        token = extract_token(request.headers, request.query_params)
        if not token:
            raise AuthenticationError("Authentication required")

        try:
            payload = token_service.verify_access_token(token)
        except TokenError as e:
            logger.info(
                "Rejected token on %s %s: %s", request.method, request.url.path, e.message
            )
            raise

        user = AuthenticatedUser(
            user_id=payload["user_id"],
            email=payload["email"],
            role=payload.get("role", "customer"),
            claims=payload,
        )

        if self.minimum_role and not has_role(user.role, self.minimum_role):
            logger.warning(
                "User %s (role=%s) denied %s %s: requires %s",
                user.user_id,
                user.role,
                request.method,
                request.url.path,
                self.minimum_role,
            )
            raise AuthorizationError(
                "Insufficient permissions",
                context={"required_role": self.minimum_role, "user_role": user.role},
            )

        remaining = seconds_until_expiry(payload)
        if remaining is not None and remaining < settings.token_refresh_threshold:
            request.state.token_refresh_suggested = True

        request.state.user = user
        return user

    def __repr__(self) -> str:
        return f"AuthGuard(name={self.name!r}, minimum_role={self.minimum_role!r})"


require_auth = AuthGuard("auth")
require_admin = AuthGuard("admin", minimum_role="admin")
