"""
DocVault SQL Stores — SQLAlchemy-backed DocumentStore / FolderStore.

Sessions are synchronous; each store call runs its unit of work in a worker
thread (asyncio.to_thread) so that batch fan-out in the engine still
overlaps I/O. One short session per call, committed on exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker

from docvault.db.models import DocumentRow, FolderRow
from docvault.db.session import session_scope
from docvault.documents.models import Document, Folder
from docvault.documents.stores import DocumentStore, FolderStore
from docvault.engine.errors import DocVaultNotFoundError

logger = logging.getLogger("docvault.db.stores")


class SqlDocumentStore(DocumentStore):
    """documents table."""

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    async def get(self, document_id: str) -> Optional[Document]:
        return await asyncio.to_thread(self._get, document_id)

    def _get(self, document_id: str) -> Optional[Document]:
        with session_scope(self._factory) as session:
            row = session.get(DocumentRow, document_id)
            return row.to_model() if row else None

    async def put(self, document: Document) -> Document:
        await asyncio.to_thread(self._put, document)
        return document

    def _put(self, document: Document) -> None:
        with session_scope(self._factory) as session:
            session.merge(DocumentRow(**DocumentRow.columns_from_model(document)))

    async def update(self, document_id: str, **fields: Any) -> Document:
        return await asyncio.to_thread(self._update, document_id, fields)

    def _update(self, document_id: str, fields: dict) -> Document:
        with session_scope(self._factory) as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                raise DocVaultNotFoundError(
                    f"Document '{document_id}' not found",
                    record_type="document",
                    record_id=document_id,
                )
            updated = row.to_model().model_copy(update=fields)
            for column, value in DocumentRow.columns_from_model(updated).items():
                setattr(row, column, value)
            return updated

    async def delete(self, document_id: str) -> bool:
        return await asyncio.to_thread(self._delete, document_id)

    def _delete(self, document_id: str) -> bool:
        with session_scope(self._factory) as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                return False
            session.delete(row)
            return True

    async def list_by_lineage(self, lineage_root_id: str) -> List[Document]:
        return await asyncio.to_thread(self._list_by_lineage, lineage_root_id)

    def _list_by_lineage(self, lineage_root_id: str) -> List[Document]:
        stmt = select(DocumentRow).where(
            or_(
                DocumentRow.lineage_root_id == lineage_root_id,
                DocumentRow.id == lineage_root_id,
            )
        )
        with session_scope(self._factory) as session:
            return [row.to_model() for row in session.scalars(stmt)]

    async def list_by_folders(self, folder_ids: Iterable[str]) -> List[Document]:
        ids = list(folder_ids)
        if not ids:
            return []
        return await asyncio.to_thread(self._list_by_folders, ids)

    def _list_by_folders(self, folder_ids: List[str]) -> List[Document]:
        stmt = select(DocumentRow).where(DocumentRow.folder_id.in_(folder_ids))
        with session_scope(self._factory) as session:
            return [row.to_model() for row in session.scalars(stmt)]

    async def list_all(self) -> List[Document]:
        return await asyncio.to_thread(self._list_all)

    def _list_all(self) -> List[Document]:
        with session_scope(self._factory) as session:
            return [row.to_model() for row in session.scalars(select(DocumentRow))]


class SqlFolderStore(FolderStore):
    """folders table."""

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    async def get(self, folder_id: str) -> Optional[Folder]:
        return await asyncio.to_thread(self._get, folder_id)

    def _get(self, folder_id: str) -> Optional[Folder]:
        with session_scope(self._factory) as session:
            row = session.get(FolderRow, folder_id)
            return row.to_model() if row else None

    async def put(self, folder: Folder) -> Folder:
        await asyncio.to_thread(self._put, folder)
        return folder

    def _put(self, folder: Folder) -> None:
        with session_scope(self._factory) as session:
            session.merge(FolderRow(**FolderRow.columns_from_model(folder)))

    async def update(self, folder_id: str, **fields: Any) -> Folder:
        return await asyncio.to_thread(self._update, folder_id, fields)

    def _update(self, folder_id: str, fields: dict) -> Folder:
        with session_scope(self._factory) as session:
            row = session.get(FolderRow, folder_id)
            if row is None:
                raise DocVaultNotFoundError(
                    f"Folder '{folder_id}' not found",
                    record_type="folder",
                    record_id=folder_id,
                )
            updated = row.to_model().model_copy(update=fields)
            for column, value in FolderRow.columns_from_model(updated).items():
                setattr(row, column, value)
            return updated

    async def delete(self, folder_id: str) -> bool:
        return await asyncio.to_thread(self._delete, folder_id)

    def _delete(self, folder_id: str) -> bool:
        with session_scope(self._factory) as session:
            row = session.get(FolderRow, folder_id)
            if row is None:
                return False
            session.delete(row)
            return True

    async def list_all(self) -> List[Folder]:
        return await asyncio.to_thread(self._list_all)

    def _list_all(self) -> List[Folder]:
        with session_scope(self._factory) as session:
            return [row.to_model() for row in session.scalars(select(FolderRow))]

    async def list_children(self, parent_id: Optional[str]) -> List[Folder]:
        return await asyncio.to_thread(self._list_children, parent_id)

    def _list_children(self, parent_id: Optional[str]) -> List[Folder]:
        if parent_id is None:
            stmt = select(FolderRow).where(FolderRow.parent_id.is_(None))
        else:
            stmt = select(FolderRow).where(FolderRow.parent_id == parent_id)
        with session_scope(self._factory) as session:
            return [row.to_model() for row in session.scalars(stmt)]
