"""
Async database engine, session factory and set-operation helpers.

Membership-style rows (org members, workspace members, assignees, watchers,
reactions) are written with single INSERT ... ON CONFLICT statements instead
of read-modify-write so concurrent writers cannot lose each other's updates.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterable
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from teamspace.core.config import settings

async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a request-scoped session.

    Commits when the request handler returns normally, rolls back otherwise.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Atomic set operations
# ---------------------------------------------------------------------------

def _insert_for(db: AsyncSession):
    """Pick the dialect-specific insert() that supports ON CONFLICT."""
    if db.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


async def add_to_set(db: AsyncSession, model: type, values: dict[str, Any]) -> bool:
    """
    Insert a row unless a row with the same unique key already exists.

    Returns True when a row was inserted, False when it was already present.
    """
    stmt = _insert_for(db)(model).values(**values).on_conflict_do_nothing()
    result = await db.execute(stmt)
    return result.rowcount == 1


async def upsert(
    db: AsyncSession,
    model: type,
    values: dict[str, Any],
    index_elements: Iterable[str],
    update_fields: Iterable[str],
) -> None:
    """Insert a row or overwrite ``update_fields`` on the conflicting row."""
    insert = _insert_for(db)
    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={field: stmt.excluded[field] for field in update_fields},
    )
    await db.execute(stmt)
