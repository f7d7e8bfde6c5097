"""
Authentication business logic.

Handles registration, email verification, login, password reset and profile
updates. All business logic lives here; routers only handle HTTP concerns.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from uuid import UUID

import redis.asyncio as aioredis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.config import settings
from teamspace.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DownstreamServiceError,
    RateLimitError,
    ValidationError,
)
from teamspace.core.security import (
    create_access_token,
    create_email_verification_token,
    create_password_reset_token,
    hash_password,
    password_reset_counter_key,
    password_reset_redis_key,
    password_reset_user_key,
    verify_password,
)
from teamspace.models.base import utcnow
from teamspace.models.email_verification import EmailVerification
from teamspace.models.user import User
from teamspace.schemas.auth import (
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RegisterResponse,
    ResetTokenStatusResponse,
    TokenResponse,
    UserResponse,
    VerifyEmailResponse,
)
from teamspace.services.account_service import AccountService
from teamspace.services.email_service import EmailService, password_reset_message

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."
RESET_TOKEN_INVALID_MESSAGE = "Invalid or expired password reset token."
RATE_LIMIT_WINDOW_SECONDS = 3600
MIN_PASSWORD_LENGTH = 8


def _enqueue(task_name: str, **kwargs: str) -> None:
    """Queue a non-critical email. Broker failures are logged, never raised."""
    from teamspace.workers import email_tasks

    try:
        getattr(email_tasks, task_name).delay(**kwargs)
    except Exception:
        logger.exception("Failed to queue %s for %s", task_name, kwargs.get("to_email"))


class AuthService:
    """Handles all authentication operations."""

    def __init__(self, db: AsyncSession, redis: aioredis.Redis, email: EmailService | None = None) -> None:
        self.db = db
        self.redis = redis
        self.email = email or EmailService()

    # -----------------------------------------------------------------------
    # Register
    # -----------------------------------------------------------------------

    async def register(self, data: RegisterRequest) -> RegisterResponse:
        """
        Register a new user.

        - Rejects emails held by an active account; emails freed by a
          deleted account may be reused
        - Creates user record and a verification token
        - Queues the verification email (best effort)
        """
        email = data.email.lower()
        availability = await AccountService(self.db).check_email_availability(email)
        if not availability.available:
            raise ConflictError("Email already registered", code="EMAIL_TAKEN")

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            display_name=data.display_name.strip(),
            phone=data.phone,
            email_verified=False,
        )
        self.db.add(user)
        await self.db.flush()

        token = await self._create_verification(user)
        _enqueue("send_verification_email", to_email=email, token=token)

        logger.info("Registered user %s (previously_deleted=%s)", user.id, availability.previously_deleted)
        return RegisterResponse(
            user=UserResponse.model_validate(user),
            message="Registration successful. Please check your email to verify your account.",
            previously_deleted=availability.previously_deleted,
        )

    # -----------------------------------------------------------------------
    # Login
    # -----------------------------------------------------------------------

    async def login(self, data: LoginRequest) -> TokenResponse:
        """
        Authenticate user with email + password.

        Raises AuthenticationError for invalid credentials (never reveals
        which field is wrong) and AuthorizationError while unverified.
        """
        user = await self._active_user_by_email(data.email)
        if user is None or user.password_hash is None or not verify_password(data.password, user.password_hash):
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        if not user.email_verified:
            raise AuthorizationError("Please verify your email before logging in", code="EMAIL_NOT_VERIFIED")

        return TokenResponse(
            access_token=create_access_token(str(user.id), user.email),
            user=UserResponse.model_validate(user),
        )

    # -----------------------------------------------------------------------
    # Email verification
    # -----------------------------------------------------------------------

    async def verify_email(self, token: str) -> VerifyEmailResponse:
        """
        Mark the token's user verified.

        The flip is a conditional UPDATE on ``email_verified = false``, so of
        two concurrent requests exactly one sees a changed row. Only that one
        queues the welcome email; the other reports success as already verified.
        """
        result = await self.db.execute(
            select(EmailVerification).where(
                EmailVerification.token == token,
                EmailVerification.expires_at > utcnow(),
            )
        )
        verification = result.scalar_one_or_none()
        if verification is None:
            raise ValidationError("Invalid or expired verification token", code="INVALID_VERIFICATION_TOKEN")

        flipped = await self.db.execute(
            update(User)
            .where(
                User.id == verification.user_id,
                User.email_verified.is_(False),
                User.deleted.is_(False),
            )
            .values(email_verified=True, updated_at=utcnow())
        )
        if flipped.rowcount != 1:
            return VerifyEmailResponse(message="Email already verified", already_verified=True)

        user = await self.db.get(User, verification.user_id, populate_existing=True)
        _enqueue("send_welcome_email", to_email=user.email, display_name=user.display_name)
        logger.info("Email verified for user %s", user.id)
        return VerifyEmailResponse(message="Email verified successfully")

    async def resend_verification(self, email: str) -> MessageResponse:
        user = await self._active_user_by_email(email)
        if user is None:
            return MessageResponse(message="If an account with that email exists, a verification email has been sent.")
        if user.email_verified:
            raise ValidationError("Email is already verified", code="ALREADY_VERIFIED")

        token = await self._create_verification(user)
        _enqueue("send_verification_email", to_email=user.email, token=token)
        return MessageResponse(message="Verification email sent")

    # -----------------------------------------------------------------------
    # Password reset
    # -----------------------------------------------------------------------

    async def forgot_password(self, email: str) -> MessageResponse:
        """
        Initiate password reset flow.

        - At most PASSWORD_RESET_MAX_REQUESTS_PER_HOUR requests per email
        - Silent success for unknown emails (no user enumeration)
        - The reset email is critical: if it cannot be sent the token is
          revoked and the failure propagates
        """
        email = email.lower()
        counter_key = password_reset_counter_key(email)
        count = await self.redis.incr(counter_key)
        if count == 1:
            await self.redis.expire(counter_key, RATE_LIMIT_WINDOW_SECONDS)
        if count > settings.PASSWORD_RESET_MAX_REQUESTS_PER_HOUR:
            raise RateLimitError("Too many password reset requests. Please try again later.")

        user = await self._active_user_by_email(email)
        if user is None:
            return MessageResponse(message=RESET_REQUESTED_MESSAGE)

        ttl = settings.PASSWORD_RESET_TOKEN_TTL_MINUTES * 60
        user_key = password_reset_user_key(str(user.id))
        previous = await self.redis.get(user_key)
        if previous:
            await self.redis.delete(password_reset_redis_key(previous))

        token = create_password_reset_token()
        await self.redis.setex(password_reset_redis_key(token), ttl, str(user.id))
        await self.redis.setex(user_key, ttl, token)

        try:
            await asyncio.to_thread(
                self.email.send_message, user.email, password_reset_message(user.display_name, token)
            )
        except DownstreamServiceError:
            await self.redis.delete(password_reset_redis_key(token), user_key)
            raise

        logger.info("Password reset requested for user %s", user.id)
        return MessageResponse(message=RESET_REQUESTED_MESSAGE)

    async def verify_reset_token(self, token: str) -> ResetTokenStatusResponse:
        return ResetTokenStatusResponse(valid=await self._user_for_reset_token(token) is not None)

    async def reset_password(self, token: str, new_password: str) -> MessageResponse:
        """
        Complete password reset.

        - Validates token from Redis
        - Updates user password and revokes the token
        - Queues a confirmation email (best effort)
        """
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        user = await self._user_for_reset_token(token)
        if user is None:
            raise ValidationError(RESET_TOKEN_INVALID_MESSAGE, code="INVALID_RESET_TOKEN")

        user.password_hash = hash_password(new_password)
        await self.db.flush()
        await self.redis.delete(password_reset_redis_key(token), password_reset_user_key(str(user.id)))

        _enqueue("send_password_changed_email", to_email=user.email, display_name=user.display_name)
        logger.info("Password reset completed for user %s", user.id)
        return MessageResponse(message="Password has been reset successfully")

    # -----------------------------------------------------------------------
    # Profile
    # -----------------------------------------------------------------------

    async def me(self, user: User) -> UserResponse:
        return UserResponse.model_validate(user)

    async def update_profile(self, user: User, data: ProfileUpdateRequest) -> UserResponse:
        if data.display_name is not None:
            user.display_name = data.display_name.strip()
        if "phone" in data.model_fields_set:
            user.phone = data.phone
        if "avatar_url" in data.model_fields_set:
            user.avatar_url = data.avatar_url
        await self.db.flush()
        await self.db.refresh(user)
        return UserResponse.model_validate(user)

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    async def _active_user_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == email.lower(), User.deleted.is_(False))
        )
        return result.scalar_one_or_none()

    async def _create_verification(self, user: User) -> str:
        token = create_email_verification_token()
        self.db.add(
            EmailVerification(
                user_id=user.id,
                token=token,
                expires_at=utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_TTL_HOURS),
            )
        )
        await self.db.flush()
        return token

    async def _user_for_reset_token(self, token: str) -> User | None:
        user_id = await self.redis.get(password_reset_redis_key(token))
        if not user_id:
            return None
        result = await self.db.execute(
            select(User).where(User.id == UUID(user_id), User.deleted.is_(False))
        )
        return result.scalar_one_or_none()
