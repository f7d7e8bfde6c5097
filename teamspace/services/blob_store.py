"""
Blob storage for task documents, backed by Cloudinary.

The Cloudinary SDK is synchronous; callers run ``store`` / ``remove`` in a
worker thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cloudinary
import cloudinary.uploader

from teamspace.core.config import settings
from teamspace.models.document import DocumentCategory

logger = logging.getLogger(__name__)

IMAGE_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
})
DOCUMENT_TYPES = frozenset({
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
})
VIDEO_TYPES = frozenset({
    "video/mp4",
    "video/webm",
    "video/ogg",
    "video/avi",
    "video/quicktime",
})
ALLOWED_MIME_TYPES = IMAGE_TYPES | DOCUMENT_TYPES | VIDEO_TYPES


class BlobStoreError(Exception):
    """Transport or provider failure."""


class BlobNotFoundError(BlobStoreError):
    """The blob does not exist under any resource type tried."""


@dataclass(frozen=True)
class StoredBlob:
    url: str
    external_id: str
    filename: str


def resource_types_for(category: DocumentCategory | None) -> list[str]:
    match category:
        case DocumentCategory.image:
            return ["image"]
        case DocumentCategory.video:
            return ["video"]
        case DocumentCategory.document | DocumentCategory.other:
            return ["raw"]
    return ["image", "video", "raw"]


class BlobStore:
    def __init__(self) -> None:
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )

    def store(self, data: bytes, mime_type: str, folder: str, filename: str) -> StoredBlob:
        # Must match the first resource type remove() tries for the category.
        resource_type = resource_types_for(DocumentCategory.from_mime_type(mime_type))[0]
        try:
            result = cloudinary.uploader.upload(
                data,
                folder=folder,
                resource_type=resource_type,
                use_filename=True,
                unique_filename=True,
                overwrite=False,
                filename_override=filename,
            )
        except Exception as exc:
            logger.error("Cloudinary upload failed for %s (%s): %s", filename, mime_type, exc)
            raise BlobStoreError(str(exc)) from exc

        public_id = result["public_id"]
        logger.info("Uploaded %s to Cloudinary as %s", filename, public_id)
        return StoredBlob(
            url=result["secure_url"],
            external_id=public_id,
            filename=public_id.rsplit("/", 1)[-1] or filename,
        )

    def remove(self, external_id: str, category: DocumentCategory | None = None) -> None:
        """
        Delete a blob, trying each plausible resource type.

        Raises BlobNotFoundError if no resource type held it, BlobStoreError
        if the provider could not be reached.
        """
        last_error: Exception | None = None
        for resource_type in resource_types_for(category):
            try:
                result = cloudinary.uploader.destroy(external_id, resource_type=resource_type)
            except Exception as exc:
                last_error = exc
                continue
            if result.get("result") == "ok":
                logger.info("Deleted %s from Cloudinary (%s)", external_id, resource_type)
                return

        if last_error is not None:
            raise BlobStoreError(str(last_error)) from last_error
        raise BlobNotFoundError(f"Blob {external_id} not found")
