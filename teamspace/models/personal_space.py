"""
PersonalSpace ORM model.
"""

from __future__ import annotations

import enum
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from teamspace.models.base import Base, TimestampMixin, UUIDMixin


class SpaceTheme(str, enum.Enum):
    light = "light"
    dark = "dark"


class PersonalSpace(Base, UUIDMixin, TimestampMixin):
    """The private, per-user context. Exactly one per user, never shared."""

    __tablename__ = "personal_spaces"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    theme: Mapped[SpaceTheme] = mapped_column(
        Enum(SpaceTheme, name="space_theme"), nullable=False, default=SpaceTheme.light
    )
    default_view: Mapped[str] = mapped_column(String(20), nullable=False, default="list")

    def __repr__(self) -> str:
        return f"<PersonalSpace id={self.id} user_id={self.user_id}>"
