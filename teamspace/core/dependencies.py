"""
FastAPI dependency injection functions.

Provides Redis connections, the authenticated user and organization
membership resolution.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.config import settings
from teamspace.core.database import get_db
from teamspace.core.errors import AuthenticationError, AuthorizationError, NotFoundError
from teamspace.core.security import decode_access_token
from teamspace.models.member import OrgMember
from teamspace.models.organization import Organization
from teamspace.models.user import User

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Validate Bearer JWT and return the authenticated User.

    Fails closed with AuthenticationError if:
    - No token provided
    - Token is invalid or expired
    - User does not exist or has deleted their account
    """
    if credentials is None:
        raise AuthenticationError("Authorization header required", code="MISSING_TOKEN")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = UUID(payload.get("sub", ""))
    except (JWTError, ValueError):
        raise AuthenticationError("Token is invalid or expired", code="INVALID_TOKEN")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or user.deleted:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")

    return user


# ---------------------------------------------------------------------------
# Organization membership
# ---------------------------------------------------------------------------

async def get_org_member(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> tuple[Organization, OrgMember]:
    """
    Resolve org by id and verify current user is a member.

    Returns (organization, org_member) tuple.
    """
    org = await db.get(Organization, org_id)
    if org is None:
        raise NotFoundError("Organization not found", code="ORG_NOT_FOUND")

    member_result = await db.execute(
        select(OrgMember).where(
            OrgMember.org_id == org.id,
            OrgMember.user_id == current_user.id,
        )
    )
    member = member_result.scalar_one_or_none()

    if member is None:
        raise AuthorizationError(
            "You are not a member of this organization", code="NOT_A_MEMBER"
        )

    return org, member
