"""
Periodic maintenance tasks.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.models.base import utcnow
from teamspace.models.email_verification import EmailVerification
from teamspace.models.user import User
from teamspace.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def purge_verifications(db: AsyncSession) -> int:
    """Delete expired verification rows and rows whose user is already verified or deleted."""
    settled_users = select(User.id).where(or_(User.email_verified.is_(True), User.deleted.is_(True)))
    result = await db.execute(
        delete(EmailVerification).where(
            or_(
                EmailVerification.expires_at <= utcnow(),
                EmailVerification.user_id.in_(settled_users),
            )
        )
    )
    return result.rowcount


async def _purge() -> int:
    from teamspace.core.database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        purged = await purge_verifications(session)
        await session.commit()
        return purged


@celery_app.task(
    name="teamspace.workers.maintenance_tasks.purge_email_verifications",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def purge_email_verifications(self) -> dict[str, int]:  # type: ignore[no-untyped-def]
    try:
        # Always create a fresh event loop; forked workers inherit a closed one.
        from teamspace.core.database import async_engine
        async_engine.sync_engine.dispose()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            purged = loop.run_until_complete(_purge())
        finally:
            loop.close()
        logger.info("Purged %d email verification row(s)", purged)
        return {"purged": purged}
    except Exception as exc:
        logger.error("purge_email_verifications failed: %s", exc)
        raise self.retry(exc=exc)
