"""
DocVault Cascading Deletion — Remove a folder subtree with everything in it.

    AUTHORIZING → DISCOVERING → DELETING_BLOBS → DELETING_DOCUMENTS
                → DELETING_FOLDERS → DONE

Phases only move forward. Nothing is rolled back: once DISCOVERING is
done, every deletion that succeeds stays done, and every one that fails
is recorded in the report (at-least-once, no rollback).

- Blobs and document records are deleted concurrently, best-effort.
  Metadata deletion is the source of truth for "the document is gone",
  so a failed blob delete never stops the run.
- Folders are deleted one at a time, children strictly before parents
  (reverse discovery order), the requested folder last.
- All versions of every document in the subtree are removed, not only
  the latest ones.

The run is shielded from caller cancellation and holds the folder's keyed
lock for discovery and deletion.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docvault.documents.models import StorageRef
from docvault.documents.stores import DocumentStore, FolderStore
from docvault.engine.batch import BatchFailure, run_batch
from docvault.engine.context import ActorContext
from docvault.engine.locks import KeyedLock, folder_key, get_default_lock
from docvault.engine.logging import log, log_folder_deletion
from docvault.folders.tree import FolderTree
from docvault.integrations.blob_storage import BlobStorage
from docvault.security.permissions import FolderPermissionResolver

logger = logging.getLogger("docvault.folders.deletion")


class DeletionPhase(enum.IntEnum):
    AUTHORIZING = 1
    DISCOVERING = 2
    DELETING_BLOBS = 3
    DELETING_DOCUMENTS = 4
    DELETING_FOLDERS = 5
    DONE = 6


@dataclass
class DeletionReport:
    """Counts and failures of one cascading delete."""
    folder_id: str
    folders_deleted: int = 0
    documents_deleted: int = 0
    blobs_deleted: int = 0
    failures: List[BatchFailure] = field(default_factory=list)
    deleted_folder_ids: List[str] = field(default_factory=list)
    discovered_folder_ids: List[str] = field(default_factory=list)
    phases: List[DeletionPhase] = field(default_factory=list)

    @property
    def phase(self) -> Optional[DeletionPhase]:
        return self.phases[-1] if self.phases else None

    def advance(self, phase: DeletionPhase) -> None:
        current = self.phase
        if current is not None and phase <= current:
            raise RuntimeError(f"Deletion cannot move from {current.name} to {phase.name}")
        self.phases.append(phase)

    @property
    def succeeded(self) -> bool:
        """The requested folder is gone."""
        return self.folder_id in self.deleted_folder_ids

    @property
    def fully_succeeded(self) -> bool:
        return self.succeeded and not self.failures

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folder_id": self.folder_id,
            "success": self.succeeded,
            "fully_succeeded": self.fully_succeeded,
            "folders_deleted": self.folders_deleted,
            "documents_deleted": self.documents_deleted,
            "blobs_deleted": self.blobs_deleted,
            "failures": [f.to_dict() for f in self.failures],
            "deleted_folder_ids": list(self.deleted_folder_ids),
            "phases": [p.name for p in self.phases],
        }


class CascadingDeletionOrchestrator:
    """
    Usage:
        orchestrator = CascadingDeletionOrchestrator(doc_store, folder_store, blobs)
        report = await orchestrator.delete_folder("root", actor)
        if not report.fully_succeeded:
            ...
    """

    def __init__(
        self,
        document_store: DocumentStore,
        folder_store: FolderStore,
        blob_storage: Optional[BlobStorage] = None,
        resolver: Optional[FolderPermissionResolver] = None,
        lock: Optional[KeyedLock] = None,
    ):
        self._documents = document_store
        self._folders = folder_store
        self._blobs = blob_storage
        self._resolver = resolver or FolderPermissionResolver(folder_store)
        self._lock = lock if lock is not None else get_default_lock()

    async def delete_folder(self, folder_id: str, actor: ActorContext) -> DeletionReport:
        """
        Delete folder_id, its descendants, their documents and blobs.

        Raises DocVaultNotFoundError / DocVaultSecurityError before any
        deletion. Everything after that is reported, never raised.
        """
        return await asyncio.shield(self._run(folder_id, actor))

    async def _run(self, folder_id: str, actor: ActorContext) -> DeletionReport:
        report = DeletionReport(folder_id=folder_id)

        async with self._lock.hold(folder_key(folder_id)):
            report.advance(DeletionPhase.AUTHORIZING)
            folder = await self._resolver.get_folder(folder_id)
            self._resolver.require(self._resolver.can_delete(folder, actor), folder, actor, "delete")

            report.advance(DeletionPhase.DISCOVERING)
            tree = await FolderTree.from_store(self._folders)
            report.discovered_folder_ids = tree.subtree(folder_id)
            documents = await self._documents.list_by_folders(report.discovered_folder_ids)
            logger.info(
                f"Deleting folder {folder_id}: {len(report.discovered_folder_ids)} folder(s), "
                f"{len(documents)} document version(s)"
            )

            report.advance(DeletionPhase.DELETING_BLOBS)
            await self._delete_blobs(documents, report)

            report.advance(DeletionPhase.DELETING_DOCUMENTS)
            doc_result = await run_batch(
                [d.id for d in documents],
                self._documents.delete,
                kind="document_delete",
            )
            report.documents_deleted = doc_result.success_count
            report.failures.extend(doc_result.failed)

            report.advance(DeletionPhase.DELETING_FOLDERS)
            for fid in tree.deletion_order(folder_id):
                await self._delete_one_folder(fid, report)
            report.folders_deleted = len(report.deleted_folder_ids)

            report.advance(DeletionPhase.DONE)

        if report.failures:
            logger.warning(
                f"Folder {folder_id} deleted with {report.failure_count} failure(s): "
                f"{report.folders_deleted} folders, {report.documents_deleted} documents, "
                f"{report.blobs_deleted} blobs"
            )
        else:
            logger.info(
                f"Folder {folder_id} deleted: {report.folders_deleted} folders, "
                f"{report.documents_deleted} documents, {report.blobs_deleted} blobs"
            )
        log(log_folder_deletion(
            folder_id=folder_id,
            user_id=actor.user_id,
            folders_deleted=report.folders_deleted,
            documents_deleted=report.documents_deleted,
            blobs_deleted=report.blobs_deleted,
            failures=report.failure_count,
            execution_id=actor.execution_id,
        ))
        return report

    async def _delete_blobs(self, documents, report: DeletionReport) -> None:
        # Restores without blob copy share a ref; delete each path once
        refs: Dict[str, StorageRef] = {}
        for doc in documents:
            if doc.storage_ref is not None:
                refs.setdefault(doc.storage_ref.path, doc.storage_ref)
        if not refs:
            return
        if self._blobs is None:
            logger.warning(f"No blob storage configured; {len(refs)} blob(s) left in place")
            return

        result = await run_batch(
            list(refs.values()),
            self._blobs.delete,
            kind="blob_delete",
            key=lambda ref: ref.path,
        )
        report.blobs_deleted = result.success_count
        report.failures.extend(result.failed)

    async def _delete_one_folder(self, folder_id: str, report: DeletionReport) -> None:
        try:
            removed = await self._folders.delete(folder_id)
        except Exception as e:
            logger.warning(f"folder_delete failed for {folder_id}: {e}")
            report.failures.append(BatchFailure(folder_id, "folder_delete", str(e) or type(e).__name__))
            return
        if removed:
            report.deleted_folder_ids.append(folder_id)
        else:
            logger.warning(f"folder_delete found no record for {folder_id}")
            report.failures.append(BatchFailure(folder_id, "folder_delete", "reported failure"))
