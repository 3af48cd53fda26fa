"""
Storefront Backend — Auth Route Handlers
==========================================

What:  /api/auth endpoints for customers: account creation, sign-in, token
       refresh, profile, password change/reset, session listing.
How:   Each handler pulls the validated body, calls AuthService, and wraps
       the result in the success envelope. Guarded routes declare
       `Depends(require_auth)`; the dispatch table lists them as ("auth",).
Who:   Called by the storefront frontend's account pages and its token
       refresh interceptor.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db_session
from storefront.middleware.auth import AuthenticatedUser, require_auth
from storefront.schemas.auth import (
    AuthResult,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenClaims,
    TokenPair,
    UserOut,
)
from storefront.schemas.envelope import ErrorResponse, SuccessResponse, success_body
from storefront.services.auth_service import RESET_REQUESTED, auth_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AuthResult],
    responses={
        400: {"description": "Field validation failed", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Create a customer account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
):
    result = await auth_service.register(db, body)
    return success_body(result, "User registered successfully")


@router.post(
    "/login",
    response_model=SuccessResponse[AuthResult],
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
):
    result = await auth_service.login(db, body.email, body.password)
    return success_body(result, "Login successful")


@router.post(
    "/refresh",
    response_model=SuccessResponse[TokenPair],
    responses={401: {"description": "Refresh token invalid or revoked", "model": ErrorResponse}},
    summary="Exchange a refresh token for a new token pair",
)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
):
    tokens = await auth_service.refresh_tokens(db, body.refresh_token)
    return success_body(tokens, "Tokens refreshed successfully")


@router.post("/forgot-password", summary="Request a password reset link")
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """
    Same answer whether or not the email exists, so the endpoint cannot be
    used to enumerate accounts. The token is handed to mail delivery, never
    to the HTTP client.
    """
    await auth_service.initiate_password_reset(db, body.email)
    return success_body(None, RESET_REQUESTED)


@router.post(
    "/reset-password",
    responses={400: {"description": "Token invalid or password too weak", "model": ErrorResponse}},
    summary="Set a new password using a reset token",
)
async def reset_password(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
):
    await auth_service.complete_password_reset(db, body.token, body.new_password)
    return success_body(None, "Password reset successfully")


# ── Authenticated ─────────────────────────────────────────────────────────

@router.get("/profile", response_model=SuccessResponse[UserOut], summary="Current user's profile")
async def get_profile(
    user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    profile = await auth_service.get_profile(db, user.user_id)
    return success_body(profile, "Profile retrieved successfully")


@router.put("/profile", response_model=SuccessResponse[UserOut], summary="Update name or phone")
async def update_profile(
    body: ProfileUpdateRequest,
    user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    profile = await auth_service.update_profile(db, user.user_id, body.model_dump(exclude_unset=True))
    return success_body(profile, "Profile updated successfully")


@router.post("/change-password", summary="Change password and sign out every session")
async def change_password(
    body: ChangePasswordRequest,
    user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    await auth_service.change_password(db, user.user_id, body.current_password, body.new_password)
    return success_body(None, "Password changed successfully")


@router.post("/logout", summary="Revoke one refresh token, or all of them")
async def logout(
    body: Optional[LogoutRequest] = None,
    user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    refresh_token = body.refresh_token if body else None
    revoked = await auth_service.logout(db, user.user_id, refresh_token)
    return success_body({"revoked_sessions": revoked}, "Logged out successfully")


@router.get("/sessions", summary="Active sessions (refresh tokens) for the current user")
async def list_sessions(
    user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    sessions = await auth_service.get_sessions(db, user.user_id)
    return success_body({"sessions": sessions, "count": len(sessions)}, "Sessions retrieved successfully")


@router.get("/verify", response_model=SuccessResponse[TokenClaims], summary="Check the presented access token")
async def verify_token(
    user: AuthenticatedUser = Depends(require_auth),
):
    claims = TokenClaims(
        user_id=user.user_id,
        email=user.email,
        role=user.role,
        expires_at=user.claims.get("exp"),
        claims=user.claims,
    )
    return success_body(claims, "Token is valid")
