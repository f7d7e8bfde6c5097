"""
Authentication endpoints.

Register, login, email verification, password reset, me, profile.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user, get_redis
from teamspace.models.user import User
from teamspace.schemas.auth import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    ResetTokenStatusResponse,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from teamspace.services.auth_service import AuthService

router = APIRouter()


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> AuthService:
    """Dependency that constructs AuthService."""
    return AuthService(db=db, redis=redis)


# ---------------------------------------------------------------------------
# Register / Login
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """
    Create a new user account.

    - Email must not belong to an active account
    - Emails released by a deleted account can be registered again
    - A verification email is queued; login requires verification
    """
    return await service.register(data)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email and password",
)
async def login(
    data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    return await service.login(data)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

@router.post(
    "/verify-email",
    response_model=VerifyEmailResponse,
    summary="Verify email address",
)
async def verify_email(
    data: VerifyEmailRequest,
    service: AuthService = Depends(get_auth_service),
) -> VerifyEmailResponse:
    """Idempotent: verifying an already verified account succeeds without side effects."""
    return await service.verify_email(data.token)


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    summary="Resend the verification email",
)
async def resend_verification(
    data: EmailRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await service.resend_verification(data.email)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request password reset email",
)
async def forgot_password(
    data: EmailRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """
    Send a password reset link.

    Always succeeds for unknown emails. Limited to a few requests per hour.
    """
    return await service.forgot_password(data.email)


@router.get(
    "/verify-reset-token/{token}",
    response_model=ResetTokenStatusResponse,
    summary="Check a password reset token",
)
async def verify_reset_token(
    token: str,
    service: AuthService = Depends(get_auth_service),
) -> ResetTokenStatusResponse:
    return await service.verify_reset_token(token)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Reset password using token",
)
async def reset_password(
    data: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await service.reset_password(data.token, data.new_password)


# ---------------------------------------------------------------------------
# Me / Profile
# ---------------------------------------------------------------------------

@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user",
)
async def me(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    return await service.me(current_user)


@router.patch(
    "/profile",
    response_model=UserResponse,
    summary="Update current user's profile",
)
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    return await service.update_profile(current_user, data)
