"""
DocVault Tables — documents and folders.

Two independent flat tables, no foreign keys: referential checks are done
in application code. Set/list fields are stored as JSON columns.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from docvault.db.base import Base
from docvault.documents.models import Document, Folder


class DocumentRow(Base):
    __tablename__ = "documents"

    id = Column(String(64), primary_key=True)
    lineage_root_id = Column(String(64), nullable=True, index=True)
    previous_version_id = Column(String(64), nullable=True)
    version_number = Column(Integer, nullable=True)
    is_latest_version = Column(Boolean, nullable=True)
    folder_id = Column(String(64), nullable=True, index=True)
    storage_url = Column(String(1000), nullable=True)
    storage_path = Column(String(500), nullable=True)
    tags = Column(JSON, nullable=True)
    name = Column(String(255), nullable=False, default="")
    original_name = Column(String(255), nullable=False, default="")
    mime_type = Column(String(100), nullable=False, default="application/octet-stream")
    size_bytes = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    restored_from_version = Column(Integer, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def to_model(self) -> Document:
        """Row → Document. Legacy NULLs are normalized by the model."""
        storage_ref = None
        if self.storage_path:
            storage_ref = {"url": self.storage_url, "path": self.storage_path}
        return Document.model_validate({
            "id": self.id,
            "lineage_root_id": self.lineage_root_id,
            "previous_version_id": self.previous_version_id,
            "version_number": self.version_number,
            "is_latest_version": self.is_latest_version,
            "folder_id": self.folder_id,
            "storage_ref": storage_ref,
            "tags": self.tags,
            "name": self.name,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "description": self.description,
            "restored_from_version": self.restored_from_version,
            "created_by": self.created_by,
            "created_at": self.created_at,
        })

    @staticmethod
    def columns_from_model(doc: Document) -> Dict[str, Any]:
        return {
            "id": doc.id,
            "lineage_root_id": doc.lineage_root_id,
            "previous_version_id": doc.previous_version_id,
            "version_number": doc.version_number,
            "is_latest_version": doc.is_latest_version,
            "folder_id": doc.folder_id,
            "storage_url": doc.storage_ref.url if doc.storage_ref else None,
            "storage_path": doc.storage_ref.path if doc.storage_ref else None,
            "tags": sorted(doc.tags),
            "name": doc.name,
            "original_name": doc.original_name,
            "mime_type": doc.mime_type,
            "size_bytes": doc.size_bytes,
            "description": doc.description,
            "restored_from_version": doc.restored_from_version,
            "created_by": doc.created_by,
            "created_at": doc.created_at,
        }


class FolderRow(Base):
    __tablename__ = "folders"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    parent_id = Column(String(64), nullable=True, index=True)
    is_restricted = Column(Boolean, nullable=True)
    allowed_user_ids = Column(JSON, nullable=True)  # NULL = no explicit allow-list
    permissions = Column(JSON, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_by = Column(String(64), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def to_model(self) -> Folder:
        return Folder.model_validate({
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "is_restricted": self.is_restricted,
            "allowed_user_ids": self.allowed_user_ids,
            "permissions": self.permissions,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at,
        })

    @staticmethod
    def columns_from_model(folder: Folder) -> Dict[str, Any]:
        allowed = sorted(folder.allowed_user_ids)
        if not folder.has_explicit_allow_list and not allowed:
            allowed = None
        return {
            "id": folder.id,
            "name": folder.name,
            "parent_id": folder.parent_id,
            "is_restricted": folder.is_restricted,
            "allowed_user_ids": allowed,
            "permissions": [p.model_dump(mode="json") for p in folder.permissions],
            "created_by": folder.created_by,
            "created_at": folder.created_at,
            "updated_by": folder.updated_by,
            "updated_at": folder.updated_at,
        }
