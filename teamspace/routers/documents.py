"""
Task document endpoints.

Batch upload, listing (per task and per uploader), description updates,
deletion and per-task stats.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user
from teamspace.models.user import User
from teamspace.schemas.document import (
    DocumentListResponse,
    DocumentResponse,
    DocumentStatsResponse,
    DocumentUpdateRequest,
    UploadResultResponse,
    UserDocumentListResponse,
)
from teamspace.services.document_service import USER_DOCUMENTS_DEFAULT_LIMIT, DocumentService, IncomingFile

router = APIRouter()


def get_document_service(db: AsyncSession = Depends(get_db)) -> DocumentService:
    return DocumentService(db=db)


@router.post(
    "/tasks/{task_id}/documents",
    response_model=UploadResultResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload documents to a task",
)
async def upload_documents(
    task_id: UUID,
    files: list[UploadFile] | None = File(default=None),
    description: str | None = Form(default=None, max_length=500),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> UploadResultResponse:
    """
    Upload up to 10 files of at most 10MB each.

    Files that fail are listed in ``failed``; the request fails only when
    none succeed.
    """
    incoming = [
        IncomingFile(
            filename=upload.filename or "upload",
            content_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        for upload in files or []
    ]
    return await service.upload(task_id, incoming, current_user, description)


@router.get(
    "/tasks/{task_id}/documents",
    response_model=DocumentListResponse,
    summary="List a task's documents",
)
async def list_documents(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> DocumentListResponse:
    return await service.list_for_task(task_id, current_user)


@router.get(
    "/users/me/documents",
    response_model=UserDocumentListResponse,
    summary="List documents the current user uploaded",
)
async def list_my_documents(
    limit: int = Query(default=USER_DOCUMENTS_DEFAULT_LIMIT),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> UserDocumentListResponse:
    """Newest first, across every task; ``limit`` above 100 is rejected."""
    return await service.list_for_user(current_user, limit)


@router.get(
    "/tasks/{task_id}/documents/stats",
    response_model=DocumentStatsResponse,
    summary="Document counts and sizes for a task",
)
async def document_stats(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> DocumentStatsResponse:
    return await service.stats(task_id, current_user)


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Get a document",
)
async def get_document(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    return await service.get_document(document_id, current_user)


@router.patch(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Update a document's description",
)
async def update_document(
    document_id: UUID,
    data: DocumentUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    return await service.update_document(document_id, data, current_user)


@router.delete(
    "/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
)
async def delete_document(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> Response:
    await service.delete_document(document_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
