"""
Workspace ORM model and its context variant.

A workspace lives in exactly one context: a user's personal space or an
organization. The two cases are separate nullable foreign keys guarded by a
CHECK constraint, surfaced to Python as ``PersonalContext`` or
``OrganizationContext``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from teamspace.models.base import Base, TimestampMixin, UUIDMixin, utcnow


@dataclass(frozen=True)
class PersonalContext:
    personal_space_id: UUID
    kind: str = "personal"

    @property
    def id(self) -> UUID:
        return self.personal_space_id


@dataclass(frozen=True)
class OrganizationContext:
    organization_id: UUID
    kind: str = "organization"

    @property
    def id(self) -> UUID:
        return self.organization_id


WorkspaceContext = PersonalContext | OrganizationContext


def context_of(kind: str, context_id: UUID) -> WorkspaceContext:
    if kind == "organization":
        return OrganizationContext(context_id)
    return PersonalContext(context_id)


class Workspace(Base, UUIDMixin, TimestampMixin):
    """A container for projects, owned by one user, with an explicit member set."""

    __tablename__ = "workspaces"
    __table_args__ = (
        CheckConstraint(
            "(personal_space_id IS NULL) <> (organization_id IS NULL)",
            name="ck_workspaces_single_context",
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#3B82F6")
    owner_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    personal_space_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("personal_spaces.id", ondelete="CASCADE"), nullable=True, index=True
    )
    organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )

    @property
    def context(self) -> WorkspaceContext:
        if self.organization_id is not None:
            return OrganizationContext(self.organization_id)
        return PersonalContext(self.personal_space_id)

    @classmethod
    def in_context(cls, context: WorkspaceContext, **values: object) -> Workspace:
        match context:
            case PersonalContext(personal_space_id=space_id):
                return cls(personal_space_id=space_id, **values)
            case OrganizationContext(organization_id=org_id):
                return cls(organization_id=org_id, **values)
        raise TypeError(f"Unknown workspace context: {context!r}")

    def __repr__(self) -> str:
        return f"<Workspace id={self.id} context={self.context}>"


class WorkspaceMember(Base):
    """Membership row; (workspace_id, user_id) is the key so inserts are set-like."""

    __tablename__ = "workspace_members"

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
