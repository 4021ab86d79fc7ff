"""
DocVault Document Service — Upload, version, restore and delete documents.

Handles:
- Upload validation (empty file, size limit, MIME family)
- Blob put + version creation through the VersionChainManager
- Collaborator notification after upload-new-version and restore
- Whole-lineage deletion (every version and its blob), best-effort
- Display enrichment through Tag / User / Department lookups

Platform config:
    docvault.yaml → documents.max_upload_size_mb, documents.allowed_mime_families
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from docvault.documents.models import Document, DocumentContent
from docvault.documents.stores import DocumentStore, FolderStore
from docvault.documents.versions import VersionChainManager, VersionResult
from docvault.engine.batch import BatchFailure, run_batch
from docvault.engine.context import ActorContext
from docvault.engine.errors import (
    DocVaultError,
    DocVaultNotFoundError,
    DocVaultSecurityError,
    DocVaultValidationError,
)
from docvault.engine.locks import lineage_key
from docvault.engine.logging import log, log_security_event
from docvault.integrations.blob_storage import BlobStorage
from docvault.integrations.lookups import DirectoryLookup, lookup_or_placeholder
from docvault.integrations.notifications import (
    EVENT_VERSION_RESTORE,
    EVENT_VERSION_UPLOAD,
    NotificationDispatcher,
)
from docvault.security.permissions import FolderPermissionResolver

logger = logging.getLogger("docvault.documents.service")


@dataclass
class DocumentDeletionReport:
    """Outcome of deleting one or more document lineages."""
    documents_deleted: int = 0
    blobs_deleted: int = 0
    deleted_document_ids: List[str] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def fully_succeeded(self) -> bool:
        return not self.failures

    def merge(self, other: "DocumentDeletionReport") -> "DocumentDeletionReport":
        self.documents_deleted += other.documents_deleted
        self.blobs_deleted += other.blobs_deleted
        self.deleted_document_ids.extend(other.deleted_document_ids)
        self.failures.extend(other.failures)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents_deleted": self.documents_deleted,
            "blobs_deleted": self.blobs_deleted,
            "deleted_document_ids": list(self.deleted_document_ids),
            "failures": [f.to_dict() for f in self.failures],
        }


class DocumentService:
    """
    Document facade used by the API layer.

    Usage:
        service = DocumentService(doc_store, folder_store, blobs)
        doc = await service.upload_document("f1", "report.pdf", data, actor)
        result = await service.upload_new_version(doc.id, "report.pdf", data2, actor)
    """

    def __init__(
        self,
        document_store: DocumentStore,
        folder_store: FolderStore,
        blob_storage: BlobStorage,
        versions: Optional[VersionChainManager] = None,
        resolver: Optional[FolderPermissionResolver] = None,
        tag_directory: Optional[DirectoryLookup] = None,
        user_directory: Optional[DirectoryLookup] = None,
        department_directory: Optional[DirectoryLookup] = None,
        notifier: Optional[NotificationDispatcher] = None,
        max_upload_size_mb: Optional[int] = None,
        allowed_mime_families: Optional[Iterable[str]] = None,
    ):
        if max_upload_size_mb is None or allowed_mime_families is None:
            from docvault.engine.config import get_config
            docs_cfg = get_config().documents
            if max_upload_size_mb is None:
                max_upload_size_mb = docs_cfg.max_upload_size_mb
            if allowed_mime_families is None:
                allowed_mime_families = docs_cfg.allowed_mime_families

        self._documents = document_store
        self._folders = folder_store
        self._blobs = blob_storage
        self._versions = versions or VersionChainManager(
            document_store,
            blob_storage=blob_storage,
            user_directory=user_directory,
            notifier=notifier,
        )
        self._resolver = resolver or FolderPermissionResolver(folder_store)
        self._tags = tag_directory
        self._users = user_directory
        self._departments = department_directory
        self._max_upload_size_mb = max_upload_size_mb
        self._mime_families = {m.lower() for m in allowed_mime_families}

    @property
    def versions(self) -> VersionChainManager:
        return self._versions

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------

    @staticmethod
    def detect_mime_type(filename: str) -> str:
        mime, _ = mimetypes.guess_type(filename)
        return mime or "application/octet-stream"

    def validate_upload(
        self,
        file_name: str,
        file_size: int,
        mime_type: Optional[str] = None,
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate a file upload against platform limits.

        Returns (is_valid, error_message_or_None).
        """
        if not file_name or not file_name.strip():
            return False, "File name is required"

        if file_size <= 0:
            return False, "File is empty"

        max_bytes = self._max_upload_size_mb * 1024 * 1024
        if file_size > max_bytes:
            return False, (
                f"File size ({file_size / 1024 / 1024:.1f} MB) exceeds "
                f"platform limit ({self._max_upload_size_mb} MB)"
            )

        mime_type = mime_type or self.detect_mime_type(file_name)
        family = mime_type.split("/", 1)[0].lower()
        if family not in self._mime_families:
            return False, (
                f"File type '{mime_type}' not allowed. "
                f"Allowed: {sorted(self._mime_families)}"
            )

        return True, None

    def _check_upload(self, file_name: str, data: bytes, mime_type: str) -> None:
        valid, error = self.validate_upload(file_name, len(data), mime_type)
        if not valid:
            raise DocVaultValidationError(
                error or "Upload validation failed",
                object_ref="documents.upload",
                validation_errors=[{"file_name": file_name, "error": error}],
            )

    async def _require_folder_access(self, folder_id: Optional[str], actor: ActorContext, action: str) -> None:
        if folder_id is None:
            return
        folder = await self._resolver.get_folder(folder_id)
        self._resolver.require(
            bool(self._resolver.check_access(folder, actor.user_id, actor.role)),
            folder,
            actor,
            action,
        )

    async def _get_document(self, document_id: str) -> Document:
        document = await self._documents.get(document_id)
        if document is None:
            raise DocVaultNotFoundError(
                f"Document '{document_id}' not found",
                record_type="document",
                record_id=document_id,
                object_ref=f"documents.{document_id}",
            )
        return document

    async def _discard_blob(self, ref) -> None:
        try:
            await self._blobs.delete(ref)
        except DocVaultError as e:
            logger.warning(f"Could not discard orphan blob {ref.path}: {e}")

    # -------------------------------------------------------------------
    # Upload / version / restore
    # -------------------------------------------------------------------

    async def upload_document(
        self,
        folder_id: Optional[str],
        file_name: str,
        data: bytes,
        actor: ActorContext,
        tags: Optional[Iterable[str]] = None,
        description: str = "",
        mime_type: Optional[str] = None,
    ) -> Document:
        """
        Upload a new document (version 1 of a new lineage).

        Raises DocVaultValidationError on validation failure,
        DocVaultNotFoundError / DocVaultSecurityError for the folder.
        """
        mime_type = mime_type or self.detect_mime_type(file_name)
        self._check_upload(file_name, data, mime_type)
        await self._require_folder_access(folder_id, actor, "upload to")

        ref = await self._blobs.put(data, file_name, mime_type, prefix=f"documents/{folder_id or 'root'}")
        content = DocumentContent(
            name=file_name,
            original_name=file_name,
            mime_type=mime_type,
            size_bytes=len(data),
            storage_ref=ref,
            description=description,
            tags={str(t) for t in tags} if tags else set(),
        )
        try:
            return await self._versions.create_first_version(content, actor, folder_id=folder_id)
        except Exception:
            await self._discard_blob(ref)
            raise

    async def upload_new_version(
        self,
        parent_document_id: str,
        file_name: str,
        data: bytes,
        actor: ActorContext,
        description: str = "",
        mime_type: Optional[str] = None,
        requested_version: Optional[int] = None,
    ) -> VersionResult:
        """Upload bytes as the next version of parent_document_id's lineage."""
        parent = await self._get_document(parent_document_id)
        mime_type = mime_type or self.detect_mime_type(file_name)
        self._check_upload(file_name, data, mime_type)
        await self._require_folder_access(parent.folder_id, actor, "upload to")

        ref = await self._blobs.put(
            data, file_name, mime_type, prefix=f"documents/{parent.folder_id or 'root'}"
        )
        content = DocumentContent(
            name=file_name,
            original_name=file_name,
            mime_type=mime_type,
            size_bytes=len(data),
            storage_ref=ref,
            description=description,
        )
        try:
            result = await self._versions.upload_new_version(
                parent.id, content, actor, requested_version=requested_version
            )
        except Exception:
            await self._discard_blob(ref)
            raise

        result.notifications = await self._versions.notify_collaborators(
            result.document, EVENT_VERSION_UPLOAD, actor
        )
        return result

    async def restore_version(self, version_id: str, actor: ActorContext) -> VersionResult:
        source = await self._get_document(version_id)
        await self._require_folder_access(source.folder_id, actor, "restore documents in")
        result = await self._versions.restore_version(version_id, actor)
        result.notifications = await self._versions.notify_collaborators(
            result.document, EVENT_VERSION_RESTORE, actor
        )
        return result

    # -------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------

    def _can_delete(self, document: Document, actor: ActorContext) -> bool:
        return actor.is_admin or document.created_by == actor.user_id or actor.has_document_access

    async def delete_document(self, document_id: str, actor: ActorContext) -> DocumentDeletionReport:
        """
        Delete every version of document_id's lineage plus their blobs.

        Blob and record deletes are independent and best-effort; failures
        are reported, not raised.
        """
        document = await self._get_document(document_id)
        if not self._can_delete(document, actor):
            log(log_security_event(
                event="permission_denied",
                object_ref=f"documents.{document_id}",
                user_id=actor.user_id,
                role=actor.role,
                permission_needed="delete",
                execution_id=actor.execution_id,
            ))
            raise DocVaultSecurityError(
                f"User '{actor.user_id}' may not delete document '{document_id}'",
                user_id=actor.user_id,
                role=actor.role,
                required_permission="delete",
                object_ref=f"documents.{document_id}",
            )

        report = DocumentDeletionReport()
        async with self._versions.lock.hold(lineage_key(document.lineage_root_id)):
            versions = await self._documents.list_by_lineage(document.lineage_root_id)

            refs = {}
            for version in versions:
                if version.storage_ref is not None:
                    refs.setdefault(version.storage_ref.path, version.storage_ref)
            blobs = await run_batch(
                list(refs.values()), self._blobs.delete, kind="blob_delete", key=lambda r: r.path
            )
            records = await run_batch(
                [v.id for v in versions], self._documents.delete, kind="document_delete"
            )

        report.blobs_deleted = blobs.success_count
        report.documents_deleted = records.success_count
        report.deleted_document_ids = list(records.succeeded)
        report.failures = [*blobs.failed, *records.failed]
        logger.info(
            f"Deleted lineage {document.lineage_root_id}: {report.documents_deleted} version(s), "
            f"{report.blobs_deleted} blob(s), {len(report.failures)} failure(s)"
        )
        return report

    async def bulk_delete_documents(
        self, document_ids: Iterable[str], actor: ActorContext
    ) -> DocumentDeletionReport:
        """delete_document for each id; NotFound / Forbidden become failures."""
        total = DocumentDeletionReport()
        for document_id in document_ids:
            # Already removed together with an earlier id's lineage
            if document_id in total.deleted_document_ids:
                continue
            try:
                total.merge(await self.delete_document(document_id, actor))
            except (DocVaultNotFoundError, DocVaultSecurityError) as e:
                logger.warning(f"Bulk delete skipped {document_id}: {e.message}")
                total.failures.append(BatchFailure(document_id, e.error_type, e.message))
        return total

    # -------------------------------------------------------------------
    # Display enrichment
    # -------------------------------------------------------------------

    async def enrich(self, document: Document) -> Dict[str, Any]:
        """Document plus resolved tags / uploader / department for display."""
        data = document.model_dump(mode="json")
        data["tags"] = sorted(document.tags)
        data["tag_details"] = [
            await lookup_or_placeholder(self._tags, "tag", tag_id) for tag_id in sorted(document.tags)
        ]
        uploader = await lookup_or_placeholder(self._users, "user", document.created_by)
        data["uploaded_by"] = uploader
        data["department"] = await lookup_or_placeholder(
            self._departments, "department", uploader.get("department_id")
        )
        return data
