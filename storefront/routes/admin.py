"""
Storefront Backend — Admin Route Handlers
===========================================

What:  Admin sign-in and admin-only maintenance endpoints.
How:   /login is public (credentials + role checked in AuthService); every
       other route depends on `require_admin`, which rejects non-admin
       tokens with 403 before the handler runs.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db_session
from storefront.middleware.auth import AuthenticatedUser, require_admin
from storefront.schemas.auth import AdminAuthResult, LoginRequest
from storefront.schemas.envelope import ErrorResponse, SuccessResponse, success_body
from storefront.services.auth_service import ADMIN_PERMISSIONS, auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post(
    "/login",
    response_model=SuccessResponse[AdminAuthResult],
    responses={
        401: {"description": "Invalid credentials", "model": ErrorResponse},
        403: {"description": "Not an active admin", "model": ErrorResponse},
    },
    summary="Sign in as administrator",
)
async def admin_login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
):
    result = await auth_service.admin_login(db, body.email, body.password)
    return success_body(result, "Admin login successful")


@router.get("/profile", summary="Current administrator's profile and permissions")
async def admin_profile(
    admin: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    profile = await auth_service.get_profile(db, admin.user_id)
    permissions = admin.claims.get("permissions") or list(ADMIN_PERMISSIONS)
    return success_body(
        {"user": profile, "permissions": permissions},
        "Admin profile retrieved successfully",
    )


@router.post("/tokens/cleanup", summary="Delete expired refresh and reset tokens")
async def cleanup_tokens(
    admin: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    counts = await auth_service.cleanup_expired_tokens(db)
    logger.info("Token cleanup triggered by admin %s", admin.user_id)
    return success_body(counts, "Expired tokens cleaned up")
