"""
Task document attachments.

Uploads are processed per file: a file that fails validation or storage is
reported in ``failed`` and the rest of the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.config import settings
from teamspace.core.errors import DownstreamServiceError, NotFoundError, ValidationError
from teamspace.models.document import Document, DocumentCategory
from teamspace.models.task import Task
from teamspace.models.user import User
from teamspace.schemas.document import (
    DocumentListResponse,
    DocumentResponse,
    DocumentStatsResponse,
    DocumentUpdateRequest,
    UploadFailure,
    UploadResultResponse,
    UserDocumentListResponse,
    UserDocumentResponse,
)
from teamspace.services.blob_store import ALLOWED_MIME_TYPES, BlobNotFoundError, BlobStore, BlobStoreError
from teamspace.services.project_service import ProjectService

logger = logging.getLogger(__name__)

USER_DOCUMENTS_DEFAULT_LIMIT = 50
USER_DOCUMENTS_MAX_LIMIT = 100


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    content_type: str
    data: bytes


class _RejectedFile(Exception):
    def __init__(self, message: str, downstream: bool = False) -> None:
        super().__init__(message)
        self.downstream = downstream


class DocumentService:
    def __init__(self, db: AsyncSession, blobs: BlobStore | None = None) -> None:
        self.db = db
        self.blobs = blobs or BlobStore()
        self.projects = ProjectService(db)

    # -----------------------------------------------------------------------
    # Upload
    # -----------------------------------------------------------------------

    async def upload(
        self, task_id: UUID, files: list[IncomingFile], user: User, description: str | None = None
    ) -> UploadResultResponse:
        """
        Store each file and record it against the task.

        Raises ValidationError for an empty or oversized batch; if no file
        succeeds, raises ValidationError, or DownstreamServiceError when the
        blob store was at fault.
        """
        task = await self._get_accessible_task(task_id, user.id)
        if not files:
            raise ValidationError("No files provided", code="NO_FILES")
        if len(files) > settings.MAX_UPLOAD_FILES:
            raise ValidationError(
                f"At most {settings.MAX_UPLOAD_FILES} files can be uploaded at once", code="TOO_MANY_FILES"
            )

        documents: list[DocumentResponse] = []
        failed: list[UploadFailure] = []
        downstream_failure = False

        for incoming in files:
            try:
                document = await self._store_one(task.id, incoming, user.id, description)
            except _RejectedFile as exc:
                downstream_failure = downstream_failure or exc.downstream
                failed.append(UploadFailure(filename=incoming.filename, error=str(exc)))
                continue
            documents.append(DocumentResponse.model_validate(document))

        if not documents:
            failures = [f.model_dump() for f in failed]
            if downstream_failure:
                raise DownstreamServiceError("Failed to upload any documents", code="UPLOAD_FAILED", failed=failures)
            raise ValidationError("Failed to upload any documents", code="UPLOAD_FAILED", failed=failures)

        logger.info(
            "Uploaded %d document(s) to task %s (%d failed)", len(documents), task.id, len(failed)
        )
        return UploadResultResponse(documents=documents, failed=failed)

    async def _store_one(
        self, task_id: UUID, incoming: IncomingFile, user_id: UUID, description: str | None
    ) -> Document:
        if incoming.content_type not in ALLOWED_MIME_TYPES:
            raise _RejectedFile(
                f"File type {incoming.content_type} is not allowed. "
                "Allowed types: images, PDFs, videos, office documents"
            )
        if len(incoming.data) > settings.MAX_UPLOAD_BYTES:
            raise _RejectedFile("File size exceeds 10MB limit")

        try:
            blob = await asyncio.to_thread(
                self.blobs.store, incoming.data, incoming.content_type, settings.UPLOAD_FOLDER, incoming.filename
            )
        except BlobStoreError as exc:
            logger.error("Failed to upload %s for task %s: %s", incoming.filename, task_id, exc)
            raise _RejectedFile("Upload failed", downstream=True) from exc

        document = Document(
            task_id=task_id,
            filename=blob.filename,
            original_name=incoming.filename,
            mime_type=incoming.content_type,
            size=len(incoming.data),
            url=blob.url,
            public_id=blob.external_id,
            category=DocumentCategory.from_mime_type(incoming.content_type),
            uploaded_by=user_id,
            description=description,
        )
        async with self.db.begin_nested():
            self.db.add(document)
            await self.db.flush()
        return document

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    async def list_for_task(self, task_id: UUID, user: User) -> DocumentListResponse:
        await self._get_accessible_task(task_id, user.id)
        result = await self.db.execute(
            select(Document).where(Document.task_id == task_id).order_by(Document.uploaded_at.desc())
        )
        documents = [DocumentResponse.model_validate(d) for d in result.scalars().all()]
        return DocumentListResponse(documents=documents, total=len(documents))

    async def list_for_user(
        self, user: User, limit: int = USER_DOCUMENTS_DEFAULT_LIMIT
    ) -> UserDocumentListResponse:
        """Documents the user uploaded across all tasks, newest first, with each task's title."""
        if not 1 <= limit <= USER_DOCUMENTS_MAX_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {USER_DOCUMENTS_MAX_LIMIT}", code="INVALID_LIMIT"
            )
        result = await self.db.execute(
            select(Document, Task.title)
            .join(Task, Task.id == Document.task_id)
            .where(Document.uploaded_by == user.id)
            .order_by(Document.uploaded_at.desc())
            .limit(limit)
        )
        documents = [
            UserDocumentResponse(**DocumentResponse.model_validate(doc).model_dump(), task_title=title)
            for doc, title in result.all()
        ]
        return UserDocumentListResponse(documents=documents, total=len(documents))

    async def get_document(self, document_id: UUID, user: User) -> DocumentResponse:
        document = await self._get_accessible_document(document_id, user.id)
        return DocumentResponse.model_validate(document)

    async def stats(self, task_id: UUID, user: User) -> DocumentStatsResponse:
        await self._get_accessible_task(task_id, user.id)
        result = await self.db.execute(
            select(Document.category, func.count(), func.coalesce(func.sum(Document.size), 0))
            .where(Document.task_id == task_id)
            .group_by(Document.category)
        )
        by_category: dict[str, int] = {}
        total = total_size = 0
        for category, count, size in result.all():
            by_category[category.value] = count
            total += count
            total_size += size
        return DocumentStatsResponse(total=total, total_size=total_size, by_category=by_category)

    # -----------------------------------------------------------------------
    # Update / Delete
    # -----------------------------------------------------------------------

    async def update_document(self, document_id: UUID, data: DocumentUpdateRequest, user: User) -> DocumentResponse:
        document = await self._get_accessible_document(document_id, user.id)
        if "description" in data.model_fields_set:
            document.description = data.description
        await self.db.flush()
        logger.info("Document %s updated by %s", document_id, user.id)
        return DocumentResponse.model_validate(document)

    async def delete_document(self, document_id: UUID, user: User) -> None:
        """Remove the blob, then the row. A blob that is already gone does not block the row."""
        document = await self._get_accessible_document(document_id, user.id)
        try:
            await asyncio.to_thread(self.blobs.remove, document.public_id, document.category)
        except BlobNotFoundError:
            logger.warning("Blob %s for document %s was already missing", document.public_id, document_id)
        except BlobStoreError as exc:
            raise DownstreamServiceError("Failed to delete document file", code="BLOB_DELETE_FAILED") from exc

        await self.db.delete(document)
        await self.db.flush()
        logger.info("Document %s (%r) deleted by %s", document_id, document.original_name, user.id)

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    async def _get_accessible_task(self, task_id: UUID, user_id: UUID) -> Task:
        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
        await self.projects.get_accessible(task.project_id, user_id)
        return task

    async def _get_accessible_document(self, document_id: UUID, user_id: UUID) -> Document:
        document = await self.db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found", code="DOCUMENT_NOT_FOUND")
        await self._get_accessible_task(document.task_id, user_id)
        return document
