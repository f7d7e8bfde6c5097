"""
Document (task attachment) ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from teamspace.models.base import Base, UUIDMixin, utcnow


class DocumentCategory(str, enum.Enum):
    image = "image"
    document = "document"
    video = "video"
    other = "other"

    @classmethod
    def from_mime_type(cls, mime_type: str) -> DocumentCategory:
        if mime_type.startswith("image/"):
            return cls.image
        if mime_type.startswith("video/"):
            return cls.video
        if mime_type.startswith("application/") or mime_type.startswith("text/"):
            return cls.document
        return cls.other


class Document(Base, UUIDMixin):
    """File attached to a task; the bytes live in the blob store under ``public_id``."""

    __tablename__ = "documents"

    task_id: Mapped[UUID] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(150), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    public_id: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[DocumentCategory] = mapped_column(
        Enum(DocumentCategory, name="document_category"), nullable=False
    )
    uploaded_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} task_id={self.task_id} name={self.original_name!r}>"
