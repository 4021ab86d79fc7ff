"""
DocVault Stores — Persistence interfaces for the two flat collections.

    documents — keyed by id, with lineage pointers
    folders   — keyed by id, with a parent_id pointer (no tree index)

No business logic lives here: get/put/update/delete by id, plus lookups by
lineage root and by folder. There is no optimistic-concurrency token; the
last write wins at the field level. Referential checks are done by the
callers, never by the store.

In-memory implementations back tests and single-process deployments; the
SQLAlchemy implementations live in docvault.db.stores.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from docvault.documents.models import Document, Folder
from docvault.engine.errors import DocVaultNotFoundError

logger = logging.getLogger("docvault.documents.stores")


class DocumentStore(ABC):
    """Version Chain Store interface."""

    @abstractmethod
    async def get(self, document_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def put(self, document: Document) -> Document:
        """Insert or replace a document record."""

    @abstractmethod
    async def update(self, document_id: str, **fields: Any) -> Document:
        """Set fields on an existing record. Raises DocVaultNotFoundError."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Remove a record. Returns False if it did not exist."""

    @abstractmethod
    async def list_by_lineage(self, lineage_root_id: str) -> List[Document]:
        """
        Every document whose lineage_root_id matches, plus the lineage root
        record itself even if a legacy record omits the field.
        """

    @abstractmethod
    async def list_by_folders(self, folder_ids: Iterable[str]) -> List[Document]:
        """Every document (all versions) whose folder_id is in folder_ids."""

    @abstractmethod
    async def list_all(self) -> List[Document]:
        ...

    async def set_latest(self, document_id: str, is_latest: bool) -> Document:
        return await self.update(document_id, is_latest_version=is_latest)


class FolderStore(ABC):
    """Folder Store interface."""

    @abstractmethod
    async def get(self, folder_id: str) -> Optional[Folder]:
        ...

    @abstractmethod
    async def put(self, folder: Folder) -> Folder:
        """Insert or replace a folder record."""

    @abstractmethod
    async def update(self, folder_id: str, **fields: Any) -> Folder:
        """Set fields on an existing record. Raises DocVaultNotFoundError."""

    @abstractmethod
    async def delete(self, folder_id: str) -> bool:
        """Remove a record. Returns False if it did not exist."""

    @abstractmethod
    async def list_all(self) -> List[Folder]:
        ...

    async def list_children(self, parent_id: Optional[str]) -> List[Folder]:
        return [f for f in await self.list_all() if f.parent_id == parent_id]


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class InMemoryDocumentStore(DocumentStore):
    """Dict-backed document collection. Returns copies, like a real database."""

    def __init__(self, documents: Optional[Iterable[Document]] = None):
        self._docs: Dict[str, Document] = {}
        for doc in documents or []:
            self._docs[doc.id] = doc.model_copy(deep=True)

    async def get(self, document_id: str) -> Optional[Document]:
        doc = self._docs.get(document_id)
        return doc.model_copy(deep=True) if doc else None

    async def put(self, document: Document) -> Document:
        self._docs[document.id] = document.model_copy(deep=True)
        return document

    async def update(self, document_id: str, **fields: Any) -> Document:
        current = self._docs.get(document_id)
        if current is None:
            raise DocVaultNotFoundError(
                f"Document '{document_id}' not found",
                record_type="document",
                record_id=document_id,
            )
        updated = current.model_copy(update=fields, deep=True)
        self._docs[document_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, document_id: str) -> bool:
        return self._docs.pop(document_id, None) is not None

    async def list_by_lineage(self, lineage_root_id: str) -> List[Document]:
        return [
            d.model_copy(deep=True) for d in self._docs.values()
            if d.lineage_root_id == lineage_root_id or d.id == lineage_root_id
        ]

    async def list_by_folders(self, folder_ids: Iterable[str]) -> List[Document]:
        wanted = set(folder_ids)
        return [
            d.model_copy(deep=True) for d in self._docs.values()
            if d.folder_id is not None and d.folder_id in wanted
        ]

    async def list_all(self) -> List[Document]:
        return [d.model_copy(deep=True) for d in self._docs.values()]

    def __len__(self) -> int:
        return len(self._docs)


class InMemoryFolderStore(FolderStore):
    """Dict-backed folder collection."""

    def __init__(self, folders: Optional[Iterable[Folder]] = None):
        self._folders: Dict[str, Folder] = {}
        for folder in folders or []:
            self._folders[folder.id] = folder.model_copy(deep=True)

    async def get(self, folder_id: str) -> Optional[Folder]:
        folder = self._folders.get(folder_id)
        return folder.model_copy(deep=True) if folder else None

    async def put(self, folder: Folder) -> Folder:
        self._folders[folder.id] = folder.model_copy(deep=True)
        return folder

    async def update(self, folder_id: str, **fields: Any) -> Folder:
        current = self._folders.get(folder_id)
        if current is None:
            raise DocVaultNotFoundError(
                f"Folder '{folder_id}' not found",
                record_type="folder",
                record_id=folder_id,
            )
        updated = current.model_copy(update=fields, deep=True)
        self._folders[folder_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, folder_id: str) -> bool:
        return self._folders.pop(folder_id, None) is not None

    async def list_all(self) -> List[Folder]:
        return [f.model_copy(deep=True) for f in self._folders.values()]

    def __len__(self) -> int:
        return len(self._folders)
