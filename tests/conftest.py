"""
Pytest configuration for Teamspace backend tests.

Provides:
- A fresh in-memory SQLite database per test (aiosqlite, StaticPool) with
  foreign keys and SAVEPOINT support enabled
- An async session bound to it
- User / workspace / project / task factories built through the services
- An in-memory Redis double for the auth flows
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import logging
from collections.abc import AsyncGenerator
from typing import Any
from uuid import UUID

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from teamspace.core.security import hash_password
from teamspace.models import Base, User
from teamspace.schemas.project import ProjectCreateRequest
from teamspace.schemas.task import TaskCreateRequest
from teamspace.services.project_service import ProjectService
from teamspace.services.task_service import TaskService
from teamspace.services.workspace_service import WorkspaceService

logging.basicConfig(level=logging.WARNING)

TEST_PASSWORD = "password123"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave as on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

class FakeRedis:
    """The handful of redis.asyncio commands the auth flows use, kept in a dict."""

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> Any:
        return self.store.get(key)

    async def setex(self, key: str, seconds: int, value: Any) -> bool:
        self.store[key] = value
        self.ttls[key] = seconds
        return True

    async def incr(self, key: str) -> int:
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return key in self.store

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

async def make_user(
    db: AsyncSession,
    display_name: str,
    email: str | None = None,
    verified: bool = True,
    password: str | None = TEST_PASSWORD,
) -> User:
    user = User(
        email=(email or f"{display_name.lower()}@acme.io"),
        display_name=display_name,
        password_hash=hash_password(password) if password else None,
        email_verified=verified,
    )
    db.add(user)
    await db.flush()
    return user


async def make_personal_workspace(db: AsyncSession, owner: User) -> UUID:
    space = await WorkspaceService(db).get_or_create_personal_space(owner)
    return space.workspaces[0].id


async def make_project(db: AsyncSession, owner: User, workspace_id: UUID, name: str = "Launch", **extra: Any) -> UUID:
    project = await ProjectService(db).create_project(
        ProjectCreateRequest(workspace_id=workspace_id, name=name, **extra), owner
    )
    return project.id


async def make_task(db: AsyncSession, creator: User, project_id: UUID, title: str = "Write brief", **extra: Any) -> UUID:
    task = await TaskService(db).create_task(
        TaskCreateRequest(project_id=project_id, title=title, **extra), creator
    )
    return task.id


@pytest.fixture
async def alice(db: AsyncSession) -> User:
    return await make_user(db, "Alice")


@pytest.fixture
async def bob(db: AsyncSession) -> User:
    return await make_user(db, "Bob")


@pytest.fixture
async def carol(db: AsyncSession) -> User:
    return await make_user(db, "Carol")


@pytest.fixture
async def workspace_id(db: AsyncSession, alice: User) -> UUID:
    """Alice's personal "My Tasks" workspace."""
    return await make_personal_workspace(db, alice)


@pytest.fixture
async def project_id(db: AsyncSession, alice: User, workspace_id: UUID) -> UUID:
    return await make_project(db, alice, workspace_id)
