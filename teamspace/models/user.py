"""
User ORM model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from teamspace.models.base import Base, TimestampMixin, UUIDMixin

DELETED_USER_NAME = "Deleted User"
FORMER_USER_NAME = "Former User"


class User(Base, UUIDMixin, TimestampMixin):
    """
    An account holder.

    Soft-deleted users keep their row: ``email`` is rewritten to a
    collision-safe value and the address they registered with moves to
    ``original_email`` so it can be registered again.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Soft deletion
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    original_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)

    # Context the user last switched to; no foreign key since it points at
    # either a personal space or an organization.
    last_context_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_context_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


@dataclass(frozen=True)
class Actor:
    """
    The user a mutation is attributed to.

    A plain value captured before post-mutation effects run, so effects
    never touch (possibly expired) ORM state.
    """

    id: UUID
    name: str

    @classmethod
    def of(cls, user: User) -> Actor:
        return cls(id=user.id, name=user.display_name)
