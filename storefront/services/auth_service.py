"""
Storefront Backend — Authentication Service
=============================================

What:  Account and session workflows: registration, login, token refresh
       with rotation, logout, profile, password change and reset, admin
       login, and housekeeping of expired tokens.
Why:   Keeps credential rules in one place, independent of HTTP, so the
       routes stay thin and the rules are unit-testable with a mocked session.
How:   Composes PasswordService (bcrypt), TokenService (JWT), and the
       InputSanitizer over an AsyncSession. Every method flushes but never
       commits; get_db_session commits when the request succeeds.

Refresh token rotation:
    login/register ─▶ row A stored
    refresh(A)     ─▶ A.revoked_at set, row B stored, new pair returned
    refresh(A)     ─▶ 401 "Invalid refresh token" (already revoked)

Refresh and reset tokens are stored as SHA-256 digests. A database leak
therefore does not hand out usable sessions or reset links.

Error Handling Strategy:
    Business rule failures raise the matching StorefrontError subclass.
    SQLAlchemy failures are logged and wrapped in DatabaseError so no SQL
    reaches the client.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import settings
from storefront.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from storefront.models.user import PasswordReset, RefreshToken, User
from storefront.schemas.auth import (
    AdminAuthResult,
    AuthResult,
    RegisterRequest,
    SessionOut,
    TokenPair,
    UserOut,
)
from storefront.services.password_service import password_service
from storefront.services.sanitizer import input_sanitizer
from storefront.services.token_service import token_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
RESET_REQUESTED = "If an account exists for that email, a password reset link has been sent"

ADMIN_PERMISSIONS: List[str] = [
    "users.view",
    "users.create",
    "users.update",
    "users.delete",
    "products.view",
    "products.create",
    "products.update",
    "products.delete",
    "orders.view",
    "orders.update",
    "orders.delete",
    "dashboard.view",
    "reports.view",
    "settings.update",
]

PROFILE_FIELDS = ("first_name", "last_name", "phone")


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sanitize_user(user: User) -> UserOut:
    """Public fields of a user row; password_hash and is_active never leave the service."""
    return UserOut.model_validate(user)


class AuthService:
    """Stateless; every method receives the request's AsyncSession."""

    # ── Registration & Login ──────────────────────────────────────────────

    async def register(self, db: AsyncSession, data: RegisterRequest) -> AuthResult:
        """
        Create a customer account and sign it in.

        Raises:
            ValidationError: one or more fields invalid (`errors` lists them all)
            ConflictError:   email already registered
        """
        errors = self.validate_registration(data)
        if errors:
            raise ValidationError("Validation failed", errors=errors)

        email = data.email.strip().lower()
        try:
            if await self._get_user_by_email(db, email) is not None:
                raise ConflictError(
                    "User with this email already exists", context={"email": email}
                )

            user = User(
                email=email,
                password_hash=password_service.hash(data.password),
                first_name=input_sanitizer.sanitize_string(data.first_name),
                last_name=input_sanitizer.sanitize_string(data.last_name),
                phone=input_sanitizer.sanitize_string(data.phone) if data.phone else None,
                role="customer",
                is_active=True,
            )
            db.add(user)
            await db.flush()

            tokens = token_service.generate_token_pair(user)
            self._store_refresh_token(db, user.id, tokens["refresh_token"])
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("register", e)

        logger.info("User registered: id=%s", user.id)
        return AuthResult(user=sanitize_user(user), tokens=TokenPair(**tokens))

    async def login(self, db: AsyncSession, email: str, password: str) -> AuthResult:
        """
        Raises:
            AuthenticationError: unknown email, wrong password, or inactive account.
                The message is identical in all three cases.
        """
        try:
            user = await self._authenticate(db, email, password)
            if not user.is_active:
                logger.warning("Login attempt on inactive account id=%s", user.id)
                raise AuthenticationError(INVALID_CREDENTIALS)

            self._finish_login(user, password)
            tokens = token_service.generate_token_pair(user)
            self._store_refresh_token(db, user.id, tokens["refresh_token"])
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("login", e)

        logger.info("User logged in: id=%s", user.id)
        return AuthResult(user=sanitize_user(user), tokens=TokenPair(**tokens))

    async def admin_login(self, db: AsyncSession, email: str, password: str) -> AdminAuthResult:
        """
        Sign in an administrator.

        Credentials are checked before the role so a wrong password never
        reveals whether the account is an admin.

        Raises:
            AuthenticationError: bad credentials
            AuthorizationError:  "Admin access required" / "Admin account is not active"
        """
        try:
            user = await self._authenticate(db, email, password)
            if user.role != "admin":
                logger.warning("Non-admin user id=%s attempted admin login", user.id)
                raise AuthorizationError("Admin access required")
            if not user.is_active:
                logger.warning("Inactive admin id=%s attempted login", user.id)
                raise AuthorizationError("Admin account is not active")

            self._finish_login(user, password)
            tokens = token_service.generate_token_pair(
                user,
                extra_claims={"permissions": ADMIN_PERMISSIONS, "login_type": "admin"},
            )
            self._store_refresh_token(db, user.id, tokens["refresh_token"])
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("admin_login", e)

        logger.info("Admin logged in: id=%s", user.id)
        return AdminAuthResult(
            user=sanitize_user(user),
            tokens=TokenPair(**tokens),
            permissions=list(ADMIN_PERMISSIONS),
        )

    # ── Token Lifecycle ───────────────────────────────────────────────────

    async def refresh_tokens(self, db: AsyncSession, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair, revoking the presented one.

        Raises:
            TokenError:          JWT invalid or expired
            AuthenticationError: token revoked, unknown, or user deactivated
        """
        payload = token_service.verify_refresh_token(refresh_token)
        user_id = payload["user_id"]

        try:
            result = await db.execute(
                select(RefreshToken).where(
                    RefreshToken.user_id == user_id,
                    RefreshToken.token == token_digest(refresh_token),
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > utcnow(),
                )
            )
            stored = result.scalar_one_or_none()
            if stored is None:
                logger.warning("Refresh with unknown or revoked token for user %s", user_id)
                raise AuthenticationError("Invalid refresh token")

            user = await self._get_user(db, user_id)
            if not user.is_active:
                raise AuthenticationError("Invalid refresh token")

            tokens = token_service.generate_token_pair(user)
            stored.revoked_at = utcnow()
            self._store_refresh_token(db, user.id, tokens["refresh_token"])
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("refresh_tokens", e)

        return TokenPair(**tokens)

    async def logout(
        self, db: AsyncSession, user_id: int, refresh_token: Optional[str] = None
    ) -> int:
        """Revoke one refresh token, or every active one when none is given. Returns the count."""
        try:
            revoked = await self._revoke_refresh_tokens(db, user_id, refresh_token)
        except SQLAlchemyError as e:
            raise self._database_error("logout", e)
        logger.info("User %s logged out (%d session(s) revoked)", user_id, revoked)
        return revoked

    async def get_sessions(self, db: AsyncSession, user_id: int) -> List[SessionOut]:
        try:
            result = await db.execute(
                select(RefreshToken)
                .where(
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > utcnow(),
                )
                .order_by(RefreshToken.created_at.desc())
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._database_error("get_sessions", e)

        return [
            SessionOut(
                id=row.id,
                token_preview=row.token[:8] + "...",
                created_at=row.created_at,
                expires_at=row.expires_at,
            )
            for row in rows
        ]

    async def cleanup_expired_tokens(self, db: AsyncSession) -> Dict[str, int]:
        """Delete expired refresh tokens and spent or expired reset tokens."""
        now = utcnow()
        try:
            tokens = await db.execute(delete(RefreshToken).where(RefreshToken.expires_at < now))
            resets = await db.execute(
                delete(PasswordReset).where(
                    or_(PasswordReset.expires_at < now, PasswordReset.used_at.is_not(None))
                )
            )
        except SQLAlchemyError as e:
            raise self._database_error("cleanup_expired_tokens", e)

        counts = {"refresh_tokens": tokens.rowcount or 0, "password_resets": resets.rowcount or 0}
        logger.info(
            "Token cleanup removed %d refresh token(s) and %d reset token(s)",
            counts["refresh_tokens"],
            counts["password_resets"],
        )
        return counts

    # ── Profile & Passwords ───────────────────────────────────────────────

    async def get_profile(self, db: AsyncSession, user_id: int) -> UserOut:
        try:
            user = await self._get_user(db, user_id)
        except SQLAlchemyError as e:
            raise self._database_error("get_profile", e)
        return sanitize_user(user)

    async def update_profile(
        self, db: AsyncSession, user_id: int, fields: Dict[str, Any]
    ) -> UserOut:
        """Update first_name, last_name, and/or phone. Other keys are ignored."""
        updates = {
            key: input_sanitizer.sanitize_string(value) if isinstance(value, str) else value
            for key, value in fields.items()
            if key in PROFILE_FIELDS and value is not None
        }

        errors = []
        for name in ("first_name", "last_name"):
            if name in updates and not updates[name]:
                errors.append({"field": name, "message": f"{name.replace('_', ' ').capitalize()} cannot be empty"})
        if updates.get("phone") and not input_sanitizer.validate_phone(fields["phone"]):
            errors.append({"field": "phone", "message": "Invalid phone number format"})
        if errors:
            raise ValidationError("Validation failed", errors=errors)

        try:
            user = await self._get_user(db, user_id)
            for key, value in updates.items():
                setattr(user, key, value or None if key == "phone" else value)
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("update_profile", e)

        return sanitize_user(user)

    async def change_password(
        self, db: AsyncSession, user_id: int, current_password: str, new_password: str
    ) -> None:
        """
        Replace the password and sign out every session.

        Raises:
            ValidationError: current password wrong, or new password too weak
        """
        try:
            user = await self._get_user(db, user_id)
            if not password_service.verify(current_password, user.password_hash):
                raise ValidationError("Current password is incorrect", field="current_password")

            self._check_strength(new_password, field="new_password")

            user.password_hash = password_service.hash(new_password)
            await self._revoke_refresh_tokens(db, user.id)
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("change_password", e)

        logger.info("Password changed for user %s; all sessions revoked", user_id)

    async def initiate_password_reset(self, db: AsyncSession, email: str) -> Optional[str]:
        """
        Create a reset token for an active account.

        Returns the raw token for delivery, or None when no active account
        matches. Callers must answer the client identically in both cases.
        """
        try:
            user = await self._get_user_by_email(db, (email or "").strip().lower())
            if user is None or not user.is_active:
                logger.info("Password reset requested for unknown or inactive email")
                return None

            token = password_service.generate_reset_token()
            db.add(
                PasswordReset(
                    user_id=user.id,
                    token=token_digest(token),
                    expires_at=utcnow() + timedelta(seconds=settings.password_reset_expiry),
                )
            )
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("initiate_password_reset", e)

        logger.info("Password reset token issued for user %s", user.id)
        return token

    async def complete_password_reset(
        self, db: AsyncSession, token: str, new_password: str
    ) -> None:
        """
        Raises:
            ValidationError: token unknown, used, or expired; or new password too weak
        """
        self._check_strength(new_password, field="new_password")

        try:
            result = await db.execute(
                select(PasswordReset).where(
                    PasswordReset.token == token_digest(token),
                    PasswordReset.used_at.is_(None),
                    PasswordReset.expires_at > utcnow(),
                )
            )
            reset = result.scalar_one_or_none()
            if reset is None:
                raise ValidationError("Invalid or expired reset token", field="token")

            user = await self._get_user(db, reset.user_id)
            user.password_hash = password_service.hash(new_password)
            reset.used_at = utcnow()
            await self._revoke_refresh_tokens(db, user.id)
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("complete_password_reset", e)

        logger.info("Password reset completed for user %s", reset.user_id)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_registration(self, data: RegisterRequest) -> List[Dict[str, str]]:
        errors: List[Dict[str, str]] = []

        if not data.email or not data.email.strip():
            errors.append({"field": "email", "message": "Email is required"})
        elif not input_sanitizer.validate_email(data.email.strip()):
            errors.append({"field": "email", "message": "Invalid email format"})

        if not data.password:
            errors.append({"field": "password", "message": "Password is required"})
        else:
            errors.extend(
                {"field": "password", "message": message}
                for message in password_service.validate_strength(data.password)
            )

        if not data.first_name or not data.first_name.strip():
            errors.append({"field": "first_name", "message": "First name is required"})
        if not data.last_name or not data.last_name.strip():
            errors.append({"field": "last_name", "message": "Last name is required"})

        if data.phone and not input_sanitizer.validate_phone(data.phone):
            errors.append({"field": "phone", "message": "Invalid phone number format"})

        return errors

    def _check_strength(self, password: str, field: str) -> None:
        problems = password_service.validate_strength(password)
        if problems:
            raise ValidationError(
                problems[0],
                field=field,
                errors=[{"field": field, "message": message} for message in problems],
            )

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _authenticate(self, db: AsyncSession, email: str, password: str) -> User:
        user = await self._get_user_by_email(db, (email or "").strip().lower())
        if user is None or not password_service.verify(password, user.password_hash):
            logger.warning("Failed login attempt")
            raise AuthenticationError(INVALID_CREDENTIALS)
        return user

    def _finish_login(self, user: User, password: str) -> None:
        if password_service.needs_rehash(user.password_hash):
            user.password_hash = password_service.hash(password)
            logger.info("Re-hashed password for user %s at cost %d", user.id, settings.bcrypt_rounds)
        user.last_login_at = utcnow()

    async def _get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def _get_user(self, db: AsyncSession, user_id: int) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    def _store_refresh_token(self, db: AsyncSession, user_id: int, refresh_token: str) -> None:
        db.add(
            RefreshToken(
                user_id=user_id,
                token=token_digest(refresh_token),
                expires_at=utcnow() + timedelta(seconds=token_service.refresh_token_lifetime()),
            )
        )

    async def _revoke_refresh_tokens(
        self, db: AsyncSession, user_id: int, refresh_token: Optional[str] = None
    ) -> int:
        statement = update(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        )
        if refresh_token:
            statement = statement.where(RefreshToken.token == token_digest(refresh_token))
        result = await db.execute(statement.values(revoked_at=utcnow()))
        return result.rowcount or 0

    @staticmethod
    def _database_error(operation: str, exc: SQLAlchemyError) -> DatabaseError:
        logger.error("Database error in %s: %s", operation, str(exc), exc_info=True)
        return DatabaseError(context={"operation": operation, "error_type": type(exc).__name__})


auth_service = AuthService()
