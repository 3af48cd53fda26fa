"""
Storefront Backend — JWT Token Service
========================================

What:  Issues and verifies the access/refresh JSON Web Tokens used by the API.
Why:   The API is stateless for ordinary requests: an access token carries
       user_id, email, and role, so guards need no database lookup. Refresh
       tokens are long-lived and separately keyed so they can be rotated and
       revoked server-side (see AuthService).
How:   python-jose signs and verifies with a shared HMAC secret. Before
       handing a token to jose we check its shape and header algorithm so
       failures map to precise, stable messages clients can act on.
Who:   AuthService (issuing), AuthGuard (verifying), /api/auth/verify.

Token anatomy:
    access   {user_id, email, role, jti, type:"access",  iat, exp, iss, aud}
    refresh  {user_id, email, role, jti, type:"refresh", iat, exp, iss, aud}

Verification failure messages:
    "Invalid token format"     not three dot-separated base64url segments
    "Invalid token algorithm"  header alg differs from the configured one
    "Invalid token signature"  HMAC mismatch
    "Token has expired"        exp in the past
    "Token not yet valid"      nbf in the future
    "Invalid token claims"     issuer or audience mismatch
    "Invalid token type"       refresh token presented as access or vice versa

An empty secret fails closed: nothing is signed (ConfigurationError) and
every token is rejected ("Token verification is not configured").
"""

import logging
import re
import secrets
import time
from typing import Any, Dict, Mapping, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from storefront.config import settings
from storefront.exceptions import ConfigurationError, TokenError

logger = logging.getLogger(__name__)

_DURATION = re.compile(r"^(\d+)([smhdwy])$")
_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
    "y": 31536000,
}
DEFAULT_DURATION = 3600

_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")
_BEARER = re.compile(r"Bearer\s+(.*)$", re.IGNORECASE)


def parse_duration(value: Any) -> int:
    """
    Convert "15m" / "24h" / "7d" style durations to seconds.

    Integers and digit-only strings are seconds. Anything unparseable falls
    back to one hour rather than failing startup.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text.isdigit():
        return int(text)
    match = _DURATION.match(text)
    if not match:
        logger.warning("Unparseable token duration %r, using %ds", value, DEFAULT_DURATION)
        return DEFAULT_DURATION
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


def is_valid_token_format(token: Optional[str]) -> bool:
    if not token or not isinstance(token, str):
        return False
    parts = token.split(".")
    return len(parts) == 3 and all(_SEGMENT.match(part) for part in parts)


def extract_bearer(header: Optional[str]) -> Optional[str]:
    """Return the credential from an `Authorization: Bearer <token>` value."""
    if not header:
        return None
    match = _BEARER.search(header)
    if not match:
        return None
    token = match.group(1).strip()
    return token or None


def extract_token(headers: Mapping[str, str], query: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Locate a token on a request.

    Sources, first hit wins:
        1. Authorization: Bearer <jwt>
        2. Authorization: <jwt>         (bare token, as sent by older clients)
        3. X-Auth-Token
        4. X-Access-Token
        5. ?token=<jwt>

    Header lookup is case-insensitive for Starlette's Headers; plain dicts
    must use canonical names.
    """
    authorization = headers.get("authorization") or headers.get("Authorization")
    if authorization:
        bearer = extract_bearer(authorization)
        if bearer:
            return bearer
        if is_valid_token_format(authorization.strip()):
            return authorization.strip()

    for name in ("X-Auth-Token", "X-Access-Token"):
        value = headers.get(name) or headers.get(name.lower())
        if value and value.strip():
            return value.strip()

    if query:
        value = query.get("token")
        if value and value.strip():
            return value.strip()

    return None


def seconds_until_expiry(payload: Mapping[str, Any]) -> Optional[int]:
    exp = payload.get("exp")
    if exp is None:
        return None
    return int(exp) - int(time.time())


class TokenService:
    """Stateless JWT issuer/verifier; configuration is read from `settings`."""

    ACCESS = "access"
    REFRESH = "refresh"

    # ── Issuing ───────────────────────────────────────────────────────────

    def generate_access_token(
        self, payload: Dict[str, Any], expires_in: Optional[int] = None
    ) -> str:
        claims = {**payload}
        claims.setdefault("type", self.ACCESS)
        lifetime = expires_in if expires_in is not None else parse_duration(settings.jwt_expires_in)
        return self._encode(claims, settings.jwt_secret, lifetime)

    def generate_refresh_token(
        self, payload: Dict[str, Any], expires_in: Optional[int] = None
    ) -> str:
        claims = {**payload, "type": self.REFRESH}
        lifetime = (
            expires_in
            if expires_in is not None
            else parse_duration(settings.jwt_refresh_expires_in)
        )
        return self._encode(claims, settings.jwt_refresh_secret, lifetime)

    def generate_token_pair(
        self, user: Any, extra_claims: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Issue an access/refresh pair for a user row.

        Both tokens share a random 16-hex `jti` so a session can be traced
        across refreshes in logs. `extra_claims` (admin permissions,
        login_type) are added to both tokens.
        """
        payload = {
            **(extra_claims or {}),
            "user_id": user.id,
            "email": user.email,
            "role": user.role,
            "jti": secrets.token_hex(8),
        }
        return {
            "access_token": self.generate_access_token(payload),
            "refresh_token": self.generate_refresh_token(payload),
            "token_type": "Bearer",
            "expires_in": parse_duration(settings.jwt_expires_in),
        }

    def refresh_token_lifetime(self) -> int:
        return parse_duration(settings.jwt_refresh_expires_in)

    def _encode(self, claims: Dict[str, Any], secret: str, lifetime: int) -> str:
        if not secret:
            raise ConfigurationError("JWT signing secret is not configured")
        now = int(time.time())
        claims.update(
            iat=now,
            exp=now + lifetime,
            iss=settings.jwt_issuer,
            aud=settings.jwt_audience,
        )
        return jwt.encode(claims, secret, algorithm=settings.jwt_algorithm)

    # ── Verifying ─────────────────────────────────────────────────────────

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        payload = self._decode(token, settings.jwt_secret)
        # Tokens minted before `type` existed carry no type; accept them as access.
        if payload.get("type", self.ACCESS) != self.ACCESS:
            raise TokenError("Invalid token type")
        if "user_id" not in payload or "email" not in payload:
            raise TokenError("Invalid token payload")
        return payload

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        payload = self._decode(token, settings.jwt_refresh_secret)
        if payload.get("type") != self.REFRESH:
            raise TokenError("Invalid token type")
        return payload

    def decode_unverified(self, token: str) -> Dict[str, Any]:
        """Read claims without checking the signature. For diagnostics only."""
        if not is_valid_token_format(token):
            raise TokenError("Invalid token format")
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            raise TokenError("Invalid token format")

    def _decode(self, token: str, secret: str) -> Dict[str, Any]:
        if not secret:
            logger.error("JWT secret is not configured; rejecting token")
            raise TokenError("Token verification is not configured")
        if not is_valid_token_format(token):
            raise TokenError("Invalid token format")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise TokenError("Invalid token format")
        if header.get("alg") != settings.jwt_algorithm:
            raise TokenError("Invalid token algorithm", context={"alg": header.get("alg")})

        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience,
                issuer=settings.jwt_issuer,
                # nbf is checked below to report it distinctly
                options={"verify_nbf": False},
            )
        except ExpiredSignatureError:
            raise TokenError("Token has expired")
        except JWTClaimsError as e:
            raise TokenError("Invalid token claims", context={"reason": str(e)})
        except JWTError:
            raise TokenError("Invalid token signature")

        nbf = payload.get("nbf")
        if nbf is not None and int(nbf) > int(time.time()):
            raise TokenError("Token not yet valid")

        return payload


token_service = TokenService()
