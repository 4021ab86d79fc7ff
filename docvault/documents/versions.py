"""
DocVault Version Chain Manager — Lineage-aware version creation.

A lineage is every document sharing one lineage_root_id. Creating a new
version (upload or restore):

1. Read every member of the lineage (plus the root record itself)
2. next_version = max(version_number) + 1   (missing/zero counts as 1)
3. Commit the new record with is_latest_version = True
4. Demote every other member to is_latest_version = False, concurrently

Demotion is best-effort: the new version is already committed and stays
latest, so individual demotion failures are collected into the result and
logged, never retried and never raised.

Steps 1-3 are a read-then-write. They run under a per-lineage keyed lock
(docvault.engine.locks) so concurrent uploads to one lineage are
serialized instead of computing the same version number. With locking
disabled the race is back.

Restore never renumbers or deletes: restoring version N creates a new,
higher-numbered version whose content is copied from N.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from docvault.documents.models import Document, DocumentContent
from docvault.documents.stores import DocumentStore
from docvault.engine.batch import BatchFailure, BatchResult, run_batch
from docvault.engine.context import ActorContext
from docvault.engine.errors import DocVaultError, DocVaultNotFoundError, DocVaultValidationError
from docvault.engine.locks import KeyedLock, get_default_lock, lineage_key
from docvault.engine.logging import log, log_version_event
from docvault.integrations.blob_storage import BlobStorage
from docvault.integrations.lookups import DirectoryLookup
from docvault.integrations.notifications import NotificationDispatcher, Recipient

logger = logging.getLogger("docvault.documents.versions")


def new_document_id() -> str:
    return uuid.uuid4().hex


@dataclass
class VersionResult:
    """New version plus the outcome of demoting the rest of the lineage."""
    document: Document
    demotion: BatchResult[str] = field(default_factory=BatchResult)
    notifications: BatchResult[Recipient] = field(default_factory=BatchResult)

    @property
    def partial_failure(self) -> bool:
        return not self.demotion.ok

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document.id,
            "lineage_root_id": self.document.lineage_root_id,
            "version_number": self.document.version_number,
            "demoted": list(self.demotion.succeeded),
            "demotion_failures": [f.to_dict() for f in self.demotion.failed],
            "notifications_sent": self.notifications.success_count,
            "notification_failures": [f.to_dict() for f in self.notifications.failed],
        }


class VersionChainManager:
    """
    Creates, restores and lists document versions.

    Usage:
        manager = VersionChainManager(document_store)
        first = await manager.create_first_version(content, actor, folder_id="f1")
        result = await manager.upload_new_version(first.id, new_content, actor)
        assert result.document.version_number == 2
    """

    def __init__(
        self,
        document_store: DocumentStore,
        lock: Optional[KeyedLock] = None,
        blob_storage: Optional[BlobStorage] = None,
        user_directory: Optional[DirectoryLookup] = None,
        notifier: Optional[NotificationDispatcher] = None,
        id_factory: Callable[[], str] = new_document_id,
    ):
        self._documents = document_store
        self._lock = lock if lock is not None else get_default_lock()
        self._blobs = blob_storage
        self._users = user_directory
        self._notifier = notifier
        self._new_id = id_factory

    @property
    def lock(self) -> KeyedLock:
        return self._lock

    # -----------------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------------

    async def create_first_version(
        self,
        content: DocumentContent,
        actor: ActorContext,
        folder_id: Optional[str] = None,
    ) -> Document:
        """Version 1 of a new lineage: lineage_root_id == id, no previous version."""
        doc_id = self._new_id()
        document = Document(
            id=doc_id,
            lineage_root_id=doc_id,
            previous_version_id=None,
            version_number=1,
            is_latest_version=True,
            folder_id=folder_id if folder_id is not None else content.folder_id,
            storage_ref=content.storage_ref,
            tags=set(content.tags or ()),
            name=content.name,
            original_name=content.original_name or content.name,
            mime_type=content.mime_type,
            size_bytes=content.size_bytes,
            description=content.description,
            created_by=actor.user_id,
        )
        await self._documents.put(document)

        logger.info(f"Created document {doc_id} (version 1) by {actor.user_id}")
        log(log_version_event(
            event="version_created",
            document_id=doc_id,
            lineage_root_id=doc_id,
            version_number=1,
            user_id=actor.user_id,
            execution_id=actor.execution_id,
        ))
        return document

    async def create_next_version(
        self,
        lineage_root_id: str,
        previous_version_id: str,
        content: DocumentContent,
        actor: ActorContext,
        requested_version: Optional[int] = None,
        restored_from_version: Optional[int] = None,
    ) -> VersionResult:
        """
        Append a version to a lineage and make it the latest.

        Args:
            lineage_root_id: Root of the lineage.
            previous_version_id: Version being branched from (normally the latest).
            content: Metadata of the new version. folder_id / tags left None
                     are inherited from the previous version.
            actor: Who is creating the version.
            requested_version: Client-supplied number; ignored when it
                               disagrees with the computed one.
            restored_from_version: Set by restore_version.

        Raises:
            DocVaultNotFoundError: lineage root or previous version unknown.
            DocVaultValidationError: previous version is in another lineage.
        """
        async with self._lock.hold(lineage_key(lineage_root_id)):
            lineage = await self._documents.list_by_lineage(lineage_root_id)
            if not lineage:
                raise DocVaultNotFoundError(
                    f"Lineage '{lineage_root_id}' not found",
                    record_type="document",
                    record_id=lineage_root_id,
                    object_ref=f"documents.{lineage_root_id}",
                    execution_id=actor.execution_id,
                )

            previous = next((d for d in lineage if d.id == previous_version_id), None)
            if previous is None:
                await self._raise_foreign_version(lineage_root_id, previous_version_id, actor)

            next_number = max(d.version_number for d in lineage) + 1
            if requested_version is not None and requested_version != next_number:
                logger.warning(
                    f"Ignoring requested version {requested_version} for lineage "
                    f"{lineage_root_id}; computed {next_number}"
                )

            document = Document(
                id=self._new_id(),
                lineage_root_id=lineage_root_id,
                previous_version_id=previous.id,
                version_number=next_number,
                is_latest_version=True,
                folder_id=content.folder_id if content.folder_id is not None else previous.folder_id,
                storage_ref=content.storage_ref,
                tags=set(content.tags) if content.tags is not None else set(previous.tags),
                name=content.name,
                original_name=content.original_name or content.name,
                mime_type=content.mime_type,
                size_bytes=content.size_bytes,
                description=content.description,
                restored_from_version=restored_from_version,
                created_by=actor.user_id,
            )
            await self._documents.put(document)

            others = [d.id for d in lineage if d.id != document.id]
            demotion = await run_batch(
                others,
                lambda doc_id: self._documents.set_latest(doc_id, False),
                kind="latest_demotion",
            )

        if demotion.failed:
            logger.warning(
                f"Version {next_number} of lineage {lineage_root_id} committed; "
                f"{demotion.failure_count} demotion(s) failed"
            )
        else:
            logger.info(f"Created version {next_number} of lineage {lineage_root_id} ({document.id})")

        log(log_version_event(
            event="version_restored" if restored_from_version is not None else "version_created",
            document_id=document.id,
            lineage_root_id=lineage_root_id,
            version_number=next_number,
            user_id=actor.user_id,
            execution_id=actor.execution_id,
            demotion_failures=demotion.failure_count,
            restored_from_version=restored_from_version,
        ))
        return VersionResult(document=document, demotion=demotion)

    async def _raise_foreign_version(
        self, lineage_root_id: str, version_id: str, actor: ActorContext
    ) -> None:
        other = await self._documents.get(version_id)
        if other is None:
            raise DocVaultNotFoundError(
                f"Document '{version_id}' not found",
                record_type="document",
                record_id=version_id,
                object_ref=f"documents.{version_id}",
                execution_id=actor.execution_id,
            )
        raise DocVaultValidationError(
            f"Document '{version_id}' belongs to lineage '{other.lineage_root_id}', "
            f"not '{lineage_root_id}'",
            object_ref=f"documents.{version_id}",
            execution_id=actor.execution_id,
        )

    async def upload_new_version(
        self,
        parent_document_id: str,
        content: DocumentContent,
        actor: ActorContext,
        requested_version: Optional[int] = None,
    ) -> VersionResult:
        """Branch a new version from parent_document_id within its lineage."""
        parent = await self._get_document(parent_document_id, actor)
        return await self.create_next_version(
            parent.lineage_root_id,
            parent.id,
            content,
            actor,
            requested_version=requested_version,
        )

    async def restore_version(self, version_id: str, actor: ActorContext) -> VersionResult:
        """
        Restore version N as a new latest version.

        Content is copied from N; the blob is copied too when the storage
        collaborator supports it, otherwise the new version shares N's ref.
        N itself is left untouched apart from its latest flag.
        """
        source = await self._get_document(version_id, actor)

        storage_ref = source.storage_ref
        if storage_ref is not None and self._blobs is not None and self._blobs.supports_copy:
            try:
                storage_ref = await self._blobs.copy(storage_ref, source.name or source.original_name)
            except Exception as e:
                logger.warning(f"Blob copy failed restoring {version_id}, sharing original ref: {e}")
                storage_ref = source.storage_ref

        content = DocumentContent(
            name=source.name,
            original_name=source.original_name or source.name,
            mime_type=source.mime_type,
            size_bytes=source.size_bytes,
            storage_ref=storage_ref,
            description=f"Restored from version {source.version_number}",
            tags=set(source.tags),
            folder_id=source.folder_id,
        )
        try:
            return await self.create_next_version(
                source.lineage_root_id,
                source.id,
                content,
                actor,
                restored_from_version=source.version_number,
            )
        except Exception:
            if storage_ref is not None and storage_ref != source.storage_ref:
                await self._discard_copy(storage_ref, version_id)
            raise

    async def _discard_copy(self, ref, version_id: str) -> None:
        try:
            await self._blobs.delete(ref)
        except DocVaultError as e:
            logger.warning(f"Could not discard blob copied for restore of {version_id} ({ref.path}): {e}")

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def _get_document(self, document_id: str, actor: Optional[ActorContext] = None) -> Document:
        document = await self._documents.get(document_id)
        if document is None:
            raise DocVaultNotFoundError(
                f"Document '{document_id}' not found",
                record_type="document",
                record_id=document_id,
                object_ref=f"documents.{document_id}",
                execution_id=actor.execution_id if actor else None,
            )
        return document

    async def get_lineage(self, lineage_root_id: str) -> List[Document]:
        """All versions of a lineage, oldest first."""
        lineage = await self._documents.list_by_lineage(lineage_root_id)
        if not lineage:
            raise DocVaultNotFoundError(
                f"Lineage '{lineage_root_id}' not found",
                record_type="document",
                record_id=lineage_root_id,
            )
        return sorted(lineage, key=lambda d: (d.version_number, d.created_at))

    async def get_version_history(self, document_id: str) -> List[Document]:
        """All versions of the lineage containing document_id, newest first."""
        document = await self._get_document(document_id)
        lineage = await self._documents.list_by_lineage(document.lineage_root_id)
        return sorted(lineage, key=lambda d: (d.version_number, d.created_at), reverse=True)

    @staticmethod
    def latest_versions(documents: Iterable[Document]) -> List[Document]:
        """
        Collapse a document list to one entry per lineage.

        Prefers the member flagged latest, then the higher version number.
        Lineages keep the order of their first appearance.
        """
        best: Dict[str, Document] = {}
        for doc in documents:
            current = best.get(doc.lineage_root_id)
            if current is None or (doc.is_latest_version, doc.version_number) > (
                current.is_latest_version, current.version_number
            ):
                best[doc.lineage_root_id] = doc
        return list(best.values())

    # -----------------------------------------------------------------------
    # Collaborators
    # -----------------------------------------------------------------------

    async def resolve_collaborators(
        self,
        lineage_root_id: str,
        exclude_user_id: Optional[str] = None,
    ) -> List[Recipient]:
        """
        Distinct uploaders of a lineage, resolved to contacts and
        de-duplicated by email. Failed or empty lookups are dropped.
        """
        if self._users is None:
            logger.debug("No user directory configured; no collaborators resolved")
            return []

        lineage = await self._documents.list_by_lineage(lineage_root_id)
        user_ids: List[str] = []
        for doc in sorted(lineage, key=lambda d: d.version_number):
            uid = doc.created_by
            if uid and uid != exclude_user_id and uid not in user_ids:
                user_ids.append(uid)

        records = await asyncio.gather(
            *(self._users.get_by_id(uid) for uid in user_ids),
            return_exceptions=True,
        )

        recipients: List[Recipient] = []
        seen_emails = set()
        for uid, record in zip(user_ids, records):
            if isinstance(record, BaseException):
                if not isinstance(record, Exception):
                    raise record
                logger.warning(f"Collaborator lookup failed for {uid}: {record}")
                continue
            if not record or not record.get("email"):
                logger.debug(f"Collaborator {uid} has no contact; skipped")
                continue
            email = str(record["email"]).strip().lower()
            if email in seen_emails:
                continue
            seen_emails.add(email)
            recipients.append(Recipient(user_id=uid, email=email, name=record.get("name")))
        return recipients

    async def notify_collaborators(
        self,
        document: Document,
        event: str,
        actor: ActorContext,
    ) -> BatchResult[Recipient]:
        """Fan a version event out to every collaborator except the actor."""
        if self._notifier is None:
            return BatchResult()

        try:
            recipients = await self.resolve_collaborators(
                document.lineage_root_id, exclude_user_id=actor.user_id
            )
        except Exception as e:
            logger.warning(f"Collaborator resolution failed for {document.lineage_root_id}: {e}")
            return BatchResult(failed=[BatchFailure(document.id, "notification", str(e))])

        if actor.email:
            recipients = [r for r in recipients if r.email != actor.email.strip().lower()]

        payload = {
            "document_id": document.id,
            "lineage_root_id": document.lineage_root_id,
            "document_name": document.name,
            "version_number": document.version_number,
            "change_type": event,
            "changed_by": actor.name or actor.user_id,
            "restored_from_version": document.restored_from_version,
        }
        result = await run_batch(
            recipients,
            lambda r: self._notifier.notify(r, event, payload),
            kind="notification",
            key=lambda r: r.email,
        )
        logger.info(
            f"Notified {result.success_count}/{len(recipients)} collaborator(s) "
            f"of {event} on {document.id}"
        )
        return result
