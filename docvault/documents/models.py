"""
DocVault Document & Folder Models — Pydantic definitions.

Document: One uploaded artifact, or one version of it, linked into a lineage.
Folder: A node in the permission-scoped folder forest.

Legacy records (loosely typed, camelCase keys, missing fields) are migrated
at read time by a single "before" validator on each model, so business
logic never has to ask whether a field is present.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("docvault.documents.models")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_version(value: Any) -> int:
    """Missing, zero or non-numeric version numbers count as version 1."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 1
    return number if number >= 1 else 1


def _rename_legacy_keys(data: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    out = dict(data)
    for legacy, field_name in mapping.items():
        if legacy in out and field_name not in out:
            out[field_name] = out.pop(legacy)
        else:
            out.pop(legacy, None)
    return out


# ---------------------------------------------------------------------------
# Document record
# ---------------------------------------------------------------------------

class StorageRef(BaseModel):
    """Opaque pointer to a backing blob, owned by the blob storage collaborator."""

    url: Optional[str] = Field(default=None, description="Download URL")
    path: str = Field(description="Storage path used for deletion")


_DOCUMENT_LEGACY_KEYS = {
    "originalDocumentId": "lineage_root_id",
    "parentDocumentId": "previous_version_id",
    "isLatestVersion": "is_latest_version",
    "version": "version_number",
    "folderId": "folder_id",
    "createdBy": "created_by",
    "createdAt": "created_at",
    "originalName": "original_name",
    "mimeType": "mime_type",
    "size": "size_bytes",
}


class Document(BaseModel):
    """
    Document metadata. The backing bytes live in blob storage (storage_ref).

    Lineage: lineage_root_id is the id of version 1 of the logical document;
    previous_version_id points at the version this one was uploaded over or
    restored from. Exactly one member of a lineage has is_latest_version.
    Records are immutable after creation except for is_latest_version.
    """

    id: str = Field(description="Opaque unique identifier")
    lineage_root_id: str = Field(description="Id of the first version of this document")
    previous_version_id: Optional[str] = Field(default=None, description="Version this one branched from")
    version_number: int = Field(default=1, ge=1, description="Monotonic within a lineage")
    is_latest_version: bool = Field(default=True)
    folder_id: Optional[str] = Field(default=None, description="Owning folder (None = root level)")
    storage_ref: Optional[StorageRef] = Field(default=None)
    tags: Set[str] = Field(default_factory=set, description="Tag ids")

    name: str = Field(default="", max_length=255)
    original_name: str = Field(default="", max_length=255)
    mime_type: str = Field(default="application/octet-stream", max_length=100)
    size_bytes: int = Field(default=0, ge=0)
    description: str = Field(default="")
    restored_from_version: Optional[int] = Field(default=None)

    created_by: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = _rename_legacy_keys(data, _DOCUMENT_LEGACY_KEYS)

        legacy_url = data.pop("firebaseStorageUrl", None)
        legacy_path = data.pop("firebaseStoragePath", None)
        if data.get("storage_ref") is None and legacy_path:
            data["storage_ref"] = {"url": legacy_url, "path": legacy_path}

        if data.get("id") is not None:
            data["id"] = str(data["id"])
        if not data.get("lineage_root_id"):
            data["lineage_root_id"] = data.get("id")
        data["version_number"] = _coerce_version(data.get("version_number"))
        if data.get("is_latest_version") is None:
            data["is_latest_version"] = True
        if data.get("tags") is None:
            data["tags"] = set()
        if data.get("description") is None:
            data["description"] = data.pop("content", None) or ""
        return data

    @property
    def is_lineage_root(self) -> bool:
        return self.id == self.lineage_root_id

    @property
    def storage_path(self) -> Optional[str]:
        return self.storage_ref.path if self.storage_ref else None


class DocumentContent(BaseModel):
    """
    Content metadata for a new version (upload or restore).

    folder_id / tags left as None inherit from the version being branched
    from.
    """

    name: str = Field(max_length=255)
    original_name: Optional[str] = Field(default=None, max_length=255)
    mime_type: str = Field(default="application/octet-stream", max_length=100)
    size_bytes: int = Field(default=0, ge=0)
    storage_ref: Optional[StorageRef] = None
    description: str = ""
    tags: Optional[Set[str]] = None
    folder_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Folder record
# ---------------------------------------------------------------------------

class FolderPermission(BaseModel):
    """Historical per-user grant on a folder; honored as an access source."""

    user_id: str
    permission: str = "admin"
    granted_at: datetime = Field(default_factory=utcnow)
    granted_by: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = _rename_legacy_keys(
            data, {"userId": "user_id", "grantedAt": "granted_at", "grantedBy": "granted_by"}
        )
        if data.get("user_id") is not None:
            data["user_id"] = str(data["user_id"])
        if data.get("granted_at") is None:
            data.pop("granted_at", None)
        return data


_FOLDER_LEGACY_KEYS = {
    "parentId": "parent_id",
    "isRestricted": "is_restricted",
    "allowedUserIds": "allowed_user_ids",
    "createdBy": "created_by",
    "createdAt": "created_at",
    "updatedBy": "updated_by",
    "updatedAt": "updated_at",
}


class Folder(BaseModel):
    """
    Folder node. Stored flat; the tree exists only through parent_id.

    Access:
    - is_restricted False → open to any principal with base document access
      (includes legacy folders created before restriction existed)
    - is_restricted True  → allowed_user_ids + permissions, plus owner/admin
    - has_explicit_allow_list records whether an allow-list was ever set;
      unrestricted folders without one are "legacy-open" for deletion.
    """

    id: str
    name: str = Field(default="", max_length=255)
    parent_id: Optional[str] = None
    is_restricted: bool = False
    allowed_user_ids: Set[str] = Field(default_factory=set)
    has_explicit_allow_list: bool = False
    permissions: List[FolderPermission] = Field(default_factory=list)

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = _rename_legacy_keys(data, _FOLDER_LEGACY_KEYS)
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        if data.get("is_restricted") is None:
            data["is_restricted"] = False
        if "has_explicit_allow_list" not in data:
            data["has_explicit_allow_list"] = data.get("allowed_user_ids") is not None
        if data.get("allowed_user_ids") is None:
            data["allowed_user_ids"] = set()
        if data.get("permissions") is None:
            data["permissions"] = []
        return data

    @field_validator("allowed_user_ids", mode="before")
    @classmethod
    def _stringify_user_ids(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple, set, frozenset)):
            return {str(u) for u in v}
        return v

    def has_permission_entry(self, user_id: str) -> bool:
        return any(p.user_id == user_id for p in self.permissions)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class AccessControlUpdate(BaseModel):
    """Requested restriction settings for a folder."""

    is_restricted: bool
    allowed_user_ids: Set[str] = Field(default_factory=set)

    @field_validator("allowed_user_ids", mode="before")
    @classmethod
    def _stringify_user_ids(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple, set, frozenset)):
            return {str(u) for u in v}
        return v
