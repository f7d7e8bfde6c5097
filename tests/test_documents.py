"""
Task document upload, listing, stats and deletion tests.

The Cloudinary-backed BlobStore is replaced by a MagicMock.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from teamspace.core.errors import AuthorizationError, DownstreamServiceError, NotFoundError, ValidationError
from teamspace.models.document import Document, DocumentCategory
from teamspace.schemas.document import DocumentUpdateRequest
from teamspace.services.blob_store import (
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    StoredBlob,
    resource_types_for,
)
from teamspace.services.document_service import DocumentService, IncomingFile
from tests.conftest import make_task

PNG = IncomingFile(filename="mockup.png", content_type="image/png", data=b"\x89PNG" + b"0" * 96)
PDF = IncomingFile(filename="brief.pdf", content_type="application/pdf", data=b"%PDF" + b"0" * 196)


def fake_store(data, mime_type, folder, filename):
    return StoredBlob(
        url=f"https://res.cloudinary.com/demo/{folder}/{filename}",
        external_id=f"{folder}/{filename}",
        filename=filename,
    )


@pytest.fixture
def blobs() -> MagicMock:
    store = MagicMock(spec=BlobStore)
    store.store.side_effect = fake_store
    return store


@pytest.fixture
def documents(db, blobs) -> DocumentService:
    return DocumentService(db, blobs=blobs)


@pytest.fixture
async def task_id(db, alice, project_id):
    return await make_task(db, alice, project_id)


class TestUpload:
    async def test_partial_batch_reports_failures(self, documents, blobs, alice, task_id):
        exe = IncomingFile(filename="setup.exe", content_type="application/x-msdownload", data=b"MZ")
        huge = IncomingFile(filename="huge.pdf", content_type="application/pdf", data=b"0" * (10 * 1024 * 1024 + 1))

        result = await documents.upload(task_id, [PNG, exe, huge, PDF], alice, description="v1")

        assert [d.original_name for d in result.documents] == ["mockup.png", "brief.pdf"]
        assert [d.category for d in result.documents] == ["image", "document"]
        assert all(d.description == "v1" for d in result.documents)
        assert [f.filename for f in result.failed] == ["setup.exe", "huge.pdf"]
        assert result.failed[0].error.startswith("File type application/x-msdownload is not allowed")
        assert result.failed[1].error == "File size exceeds 10MB limit"
        assert blobs.store.call_count == 2

    async def test_all_invalid_is_a_validation_error(self, documents, alice, task_id):
        exe = IncomingFile(filename="setup.exe", content_type="application/x-msdownload", data=b"MZ")
        with pytest.raises(ValidationError) as excinfo:
            await documents.upload(task_id, [exe], alice)
        assert excinfo.value.extra["failed"][0]["filename"] == "setup.exe"

    async def test_all_storage_failures_are_downstream(self, documents, blobs, alice, task_id):
        blobs.store.side_effect = BlobStoreError("timeout")
        with pytest.raises(DownstreamServiceError):
            await documents.upload(task_id, [PNG, PDF], alice)

    async def test_storage_failure_skips_one_file(self, db, documents, blobs, alice, task_id):
        blobs.store.side_effect = [BlobStoreError("timeout"), fake_store(PDF.data, PDF.content_type, "f", "brief.pdf")]

        result = await documents.upload(task_id, [PNG, PDF], alice)

        assert [d.original_name for d in result.documents] == ["brief.pdf"]
        assert result.failed[0].error == "Upload failed"
        rows = (await db.execute(select(Document.original_name))).scalars().all()
        assert rows == ["brief.pdf"]

    async def test_batch_size_limits(self, documents, alice, task_id):
        with pytest.raises(ValidationError) as empty:
            await documents.upload(task_id, [], alice)
        assert empty.value.code == "NO_FILES"

        with pytest.raises(ValidationError) as crowded:
            await documents.upload(task_id, [PNG] * 11, alice)
        assert crowded.value.code == "TOO_MANY_FILES"

    async def test_outsider_cannot_upload(self, documents, carol, task_id):
        with pytest.raises(AuthorizationError):
            await documents.upload(task_id, [PNG], carol)


class TestReadAndManage:
    async def test_stats_by_category(self, documents, alice, task_id):
        await documents.upload(task_id, [PNG, PDF, PNG], alice)

        stats = await documents.stats(task_id, alice)

        assert stats.total == 3
        assert stats.total_size == 2 * len(PNG.data) + len(PDF.data)
        assert stats.by_category == {"image": 2, "document": 1}

    async def test_update_description(self, documents, alice, task_id):
        uploaded = (await documents.upload(task_id, [PDF], alice, description="draft")).documents[0]

        updated = await documents.update_document(uploaded.id, DocumentUpdateRequest(description=None), alice)
        assert updated.description is None

        listed = await documents.list_for_task(task_id, alice)
        assert listed.total == 1
        assert listed.documents[0].description is None

    async def test_missing_blob_still_deletes_row(self, db, documents, blobs, alice, task_id):
        uploaded = (await documents.upload(task_id, [PNG], alice)).documents[0]
        blobs.remove.side_effect = BlobNotFoundError("gone")

        await documents.delete_document(uploaded.id, alice)

        blobs.remove.assert_called_once_with("teamspace/documents/mockup.png", DocumentCategory.image)
        assert await db.get(Document, uploaded.id) is None

    async def test_blob_store_outage_keeps_row(self, db, documents, blobs, alice, task_id):
        uploaded = (await documents.upload(task_id, [PNG], alice)).documents[0]
        blobs.remove.side_effect = BlobStoreError("unreachable")

        with pytest.raises(DownstreamServiceError):
            await documents.delete_document(uploaded.id, alice)
        assert await db.get(Document, uploaded.id) is not None

    async def test_unknown_document(self, documents, alice):
        with pytest.raises(NotFoundError):
            await documents.get_document(uuid4(), alice)


class TestUserDocuments:
    async def test_lists_own_uploads_newest_first(self, db, documents, alice, bob, project_id, task_id):
        review = await make_task(db, alice, project_id, title="Design review")
        older = (await documents.upload(task_id, [PDF], alice)).documents[0]
        newer = (await documents.upload(review, [PNG], alice)).documents[0]
        await db.execute(
            update(Document)
            .where(Document.id == older.id)
            .values(uploaded_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        )

        listed = await documents.list_for_user(alice)

        assert listed.total == 2
        assert [d.id for d in listed.documents] == [newer.id, older.id]
        assert [(d.task_id, d.task_title) for d in listed.documents] == [
            (review, "Design review"),
            (task_id, "Write brief"),
        ]
        assert (await documents.list_for_user(bob)).documents == []

    async def test_limit_bounds(self, documents, alice, task_id):
        await documents.upload(task_id, [PNG, PDF, PNG], alice)

        assert (await documents.list_for_user(alice, limit=2)).total == 2
        with pytest.raises(ValidationError) as excinfo:
            await documents.list_for_user(alice, limit=101)
        assert excinfo.value.code == "INVALID_LIMIT"


class TestResourceTypes:
    def test_category_narrows_resource_types(self):
        assert resource_types_for(DocumentCategory.image) == ["image"]
        assert resource_types_for(DocumentCategory.other) == ["raw"]
        assert resource_types_for(None) == ["image", "video", "raw"]

    def test_mime_categories(self):
        assert DocumentCategory.from_mime_type("video/mp4") is DocumentCategory.video
        assert DocumentCategory.from_mime_type("text/plain") is DocumentCategory.document
        assert DocumentCategory.from_mime_type("audio/ogg") is DocumentCategory.other


class FakeCloudinary:
    """Keeps uploaded public ids per resource type, like the Cloudinary API does."""

    def __init__(self) -> None:
        self.blobs: set[tuple[str, str]] = set()

    def upload(self, data, folder, resource_type, filename_override, **options):
        public_id = f"{folder}/{filename_override.rsplit('.', 1)[0]}"
        self.blobs.add((public_id, resource_type))
        return {"public_id": public_id, "secure_url": f"https://res.cloudinary.com/demo/{resource_type}/{public_id}"}

    def destroy(self, public_id, resource_type):
        if (public_id, resource_type) in self.blobs:
            self.blobs.remove((public_id, resource_type))
            return {"result": "ok"}
        return {"result": "not found"}


class TestBlobStoreRoundTrip:
    @pytest.fixture
    def cloud(self):
        fake = FakeCloudinary()
        with (
            patch("cloudinary.uploader.upload", side_effect=fake.upload),
            patch("cloudinary.uploader.destroy", side_effect=fake.destroy),
        ):
            yield fake

    @pytest.mark.parametrize(
        ("mime_type", "filename"),
        [
            ("image/png", "mockup.png"),
            ("video/mp4", "clip.mp4"),
            ("application/pdf", "brief.pdf"),
            ("text/plain", "notes.txt"),
        ],
    )
    def test_stored_blob_can_be_removed_by_category(self, cloud, mime_type, filename):
        store = BlobStore()
        blob = store.store(b"bytes", mime_type, "teamspace/documents", filename)

        store.remove(blob.external_id, DocumentCategory.from_mime_type(mime_type))

        assert cloud.blobs == set()

    def test_video_is_uploaded_as_video(self, cloud):
        BlobStore().store(b"bytes", "video/webm", "teamspace/documents", "demo.webm")
        assert cloud.blobs == {("teamspace/documents/demo", "video")}

    def test_unknown_blob_is_reported_missing(self, cloud):
        with pytest.raises(BlobNotFoundError):
            BlobStore().remove("teamspace/documents/ghost", DocumentCategory.video)
