"""
Document attachment schemas.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class DocumentResponse(BaseModel):
    id: UUID
    task_id: UUID
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    category: str
    uploaded_by: UUID | None
    description: str | None
    uploaded_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("category", mode="before")
    @classmethod
    def _category_value(cls, value: object) -> object:
        return value.value if isinstance(value, Enum) else value


class UploadFailure(BaseModel):
    filename: str
    error: str


class UploadResultResponse(BaseModel):
    documents: list[DocumentResponse]
    failed: list[UploadFailure] = Field(default_factory=list)


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class UserDocumentResponse(DocumentResponse):
    task_title: str


class UserDocumentListResponse(BaseModel):
    documents: list[UserDocumentResponse]
    total: int


class DocumentUpdateRequest(BaseModel):
    description: str | None = Field(default=None, max_length=500)


class DocumentStatsResponse(BaseModel):
    total: int
    total_size: int
    by_category: dict[str, int]
