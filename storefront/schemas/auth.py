"""
Storefront Backend — Auth Request/Response Schemas
====================================================

What:  Pydantic models for the /api/auth and /api/admin endpoints.
Why:   FastAPI validates shapes (types, required keys) before handlers run;
       business rules such as password strength stay in AuthService so
       they produce the field-level `errors` list the frontend expects.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ── Requests ──────────────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(
        default=None,
        description="Revoke only this refresh token; omit to sign out of every session",
    )


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(max_length=255)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=255)
    new_password: str = Field(max_length=128)


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)


# ── Responses ─────────────────────────────────────────────────────────────

class UserOut(BaseModel):
    """Public view of a user row. Never includes password_hash or is_active."""

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")


class AuthResult(BaseModel):
    user: UserOut
    tokens: TokenPair


class AdminAuthResult(AuthResult):
    permissions: List[str]


class SessionOut(BaseModel):
    id: int
    token_preview: str = Field(description="First 8 characters of the refresh token")
    created_at: datetime
    expires_at: datetime


class TokenClaims(BaseModel):
    user_id: int
    email: str
    role: str
    expires_at: Optional[int] = None
    claims: Dict[str, Any] = Field(default_factory=dict)
