"""Unit tests for docvault.documents.service — DocumentService."""

import pytest

from builders import make_folder
from docvault.documents.service import DocumentDeletionReport, DocumentService
from docvault.documents.stores import InMemoryFolderStore
from docvault.documents.versions import VersionChainManager
from docvault.engine.errors import (
    DocVaultNotFoundError,
    DocVaultSecurityError,
    DocVaultValidationError,
)
from docvault.integrations.lookups import InMemoryDirectory
from docvault.integrations.notifications import LoggingNotificationDispatcher

PDF = b"%PDF-1.7 fake"


@pytest.fixture
def folders():
    return InMemoryFolderStore([
        make_folder("open"),
        make_folder("secret", created_by="u1", is_restricted=True, allowed=["u1"]),
    ])


@pytest.fixture
def users():
    return InMemoryDirectory.from_records([
        {"id": "u1", "email": "alice@example.com", "name": "Alice", "department_id": "dep1"},
        {"id": "u2", "email": "bob@example.com", "name": "Bob"},
    ])


@pytest.fixture
def notifier():
    return LoggingNotificationDispatcher()


@pytest.fixture
def service(doc_store, folders, blobs, lock, users, notifier):
    versions = VersionChainManager(
        doc_store, lock=lock, blob_storage=blobs, user_directory=users, notifier=notifier
    )
    return DocumentService(
        doc_store,
        folders,
        blobs,
        versions=versions,
        tag_directory=InMemoryDirectory({"t1": {"id": "t1", "name": "Finance"}}),
        user_directory=users,
        department_directory=InMemoryDirectory({"dep1": {"id": "dep1", "name": "Legal"}}),
        max_upload_size_mb=1,
        allowed_mime_families=["application", "text"],
    )


class TestValidateUpload:

    def test_valid(self, service):
        assert service.validate_upload("report.pdf", 100) == (True, None)

    def test_missing_name(self, service):
        assert service.validate_upload("  ", 100) == (False, "File name is required")

    def test_empty(self, service):
        assert service.validate_upload("a.pdf", 0) == (False, "File is empty")

    def test_too_large(self, service):
        ok, msg = service.validate_upload("a.pdf", 2 * 1024 * 1024)
        assert not ok
        assert "exceeds platform limit" in msg

    def test_mime_family(self, service):
        ok, msg = service.validate_upload("clip.mp4", 100)
        assert not ok
        assert "not allowed" in msg

    def test_explicit_mime_wins(self, service):
        assert service.validate_upload("blob", 10, "text/plain") == (True, None)

    def test_detect_mime_type(self):
        assert DocumentService.detect_mime_type("a.pdf") == "application/pdf"
        assert DocumentService.detect_mime_type("noext") == "application/octet-stream"

    def test_limits_from_config(self, doc_store, folders, blobs):
        service = DocumentService(doc_store, folders, blobs)
        ok, _ = service.validate_upload("a.pdf", 49 * 1024 * 1024)
        assert ok


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_document(self, service, blobs, alice):
        doc = await service.upload_document("open", "report.pdf", PDF, alice, tags=["t1"])
        assert doc.version_number == 1
        assert doc.folder_id == "open"
        assert doc.mime_type == "application/pdf"
        assert doc.size_bytes == len(PDF)
        assert doc.tags == {"t1"}
        assert doc.storage_path.startswith("documents/open/")
        assert doc.storage_path in blobs

    @pytest.mark.asyncio
    async def test_upload_to_root_level(self, service, alice):
        doc = await service.upload_document(None, "notes.txt", b"hello", alice)
        assert doc.folder_id is None
        assert doc.storage_path.startswith("documents/root/")

    @pytest.mark.asyncio
    async def test_rejects_empty_before_storing(self, service, blobs, alice):
        with pytest.raises(DocVaultValidationError, match="empty"):
            await service.upload_document("open", "report.pdf", b"", alice)
        assert len(blobs) == 0

    @pytest.mark.asyncio
    async def test_restricted_folder_denied(self, service, blobs, bob):
        with pytest.raises(DocVaultSecurityError):
            await service.upload_document("secret", "report.pdf", PDF, bob)
        assert len(blobs) == 0

    @pytest.mark.asyncio
    async def test_unknown_folder(self, service, alice):
        with pytest.raises(DocVaultNotFoundError):
            await service.upload_document("ghost", "report.pdf", PDF, alice)


class TestVersions:

    @pytest.mark.asyncio
    async def test_new_version_notifies_other_collaborators(self, service, notifier, alice, bob):
        v1 = await service.upload_document("open", "report.pdf", PDF, alice)
        result = await service.upload_new_version(v1.id, "report.pdf", PDF + b"2", bob)
        assert result.document.version_number == 2
        assert not result.partial_failure
        assert [r.email for r in result.notifications.succeeded] == ["alice@example.com"]
        assert notifier.sent[0][1] == "version_upload"

    @pytest.mark.asyncio
    async def test_own_upload_notifies_nobody(self, service, notifier, alice):
        v1 = await service.upload_document("open", "report.pdf", PDF, alice)
        result = await service.upload_new_version(v1.id, "report.pdf", PDF, alice)
        assert result.notifications.succeeded == []
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_restore(self, service, notifier, alice, bob):
        v1 = await service.upload_document("open", "report.pdf", PDF, alice)
        await service.upload_new_version(v1.id, "report.pdf", PDF + b"2", alice)
        result = await service.restore_version(v1.id, bob)
        assert result.document.version_number == 3
        assert result.document.restored_from_version == 1
        assert notifier.sent[-1][1] == "version_restore"
        assert notifier.sent[-1][2]["restored_from_version"] == 1

    @pytest.mark.asyncio
    async def test_new_version_of_missing_document(self, service, alice):
        with pytest.raises(DocVaultNotFoundError):
            await service.upload_new_version("ghost", "report.pdf", PDF, alice)


class TestDelete:

    @pytest.mark.asyncio
    async def test_deletes_every_version_and_blob(self, service, doc_store, blobs, alice):
        v1 = await service.upload_document("open", "report.pdf", PDF, alice)
        await service.upload_new_version(v1.id, "report.pdf", PDF, alice)
        await service.restore_version(v1.id, alice)
        assert len(doc_store) == 3

        report = await service.delete_document(v1.id, alice)
        assert isinstance(report, DocumentDeletionReport)
        assert report.fully_succeeded
        assert report.documents_deleted == 3
        assert report.blobs_deleted == 3
        assert len(doc_store) == 0
        assert len(blobs) == 0

    @pytest.mark.asyncio
    async def test_blob_failure_reported(self, service, doc_store, blobs, alice):
        v1 = await service.upload_document("open", "report.pdf", PDF, alice)
        blobs.fail_paths.add(v1.storage_path)
        report = await service.delete_document(v1.id, alice)
        assert not report.fully_succeeded
        assert report.documents_deleted == 1
        assert report.failures[0].kind == "blob_delete"
        assert len(doc_store) == 0

    @pytest.mark.asyncio
    async def test_delete_denied(self, service, doc_store, alice, mallory):
        v1 = await service.upload_document("open", "report.pdf", PDF, alice)
        with pytest.raises(DocVaultSecurityError):
            await service.delete_document(v1.id, mallory)
        assert len(doc_store) == 1

    @pytest.mark.asyncio
    async def test_bulk_delete(self, service, doc_store, alice, mallory):
        a = await service.upload_document("open", "a.pdf", PDF, alice)
        a2 = (await service.upload_new_version(a.id, "a.pdf", PDF, alice)).document
        b = await service.upload_document("open", "b.pdf", PDF, alice)

        report = await service.bulk_delete_documents([a.id, a2.id, "ghost", b.id], alice)
        assert report.documents_deleted == 3
        assert [(f.item_id, f.kind) for f in report.failures] == [("ghost", "DocVaultNotFoundError")]
        assert len(doc_store) == 0

    @pytest.mark.asyncio
    async def test_bulk_delete_forbidden_item(self, service, alice, mallory):
        a = await service.upload_document("open", "a.pdf", PDF, alice)
        report = await service.bulk_delete_documents([a.id], mallory)
        assert report.documents_deleted == 0
        assert report.failures[0].kind == "DocVaultSecurityError"


class TestEnrich:

    @pytest.mark.asyncio
    async def test_resolves_lookups(self, service, alice):
        doc = await service.upload_document("open", "report.pdf", PDF, alice, tags=["t1", "t404"])
        data = await service.enrich(doc)
        assert data["tags"] == ["t1", "t404"]
        assert data["tag_details"][0]["name"] == "Finance"
        assert data["tag_details"][1] == {"id": "t404", "name": "Unknown tag", "missing": True}
        assert data["uploaded_by"]["name"] == "Alice"
        assert data["department"]["name"] == "Legal"

    @pytest.mark.asyncio
    async def test_placeholders_for_unknown_uploader(self, service, doc_store):
        from builders import make_document

        doc = make_document("legacy", created_by="gone")
        data = await service.enrich(doc)
        assert data["uploaded_by"]["name"] == "Unknown user"
        assert data["department"]["name"] == "Unknown department"
