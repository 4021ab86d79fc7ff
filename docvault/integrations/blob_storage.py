"""
DocVault Blob Storage — Backing-bytes collaborator.

The engine never inspects blob contents. It only:
- put(bytes)       → StorageRef{url, path}
- delete(ref)      → True on success, False (or raise) on failure
- copy(ref, name)  → StorageRef (optional; used by restore when available)

Implementations:
- LocalBlobStorage:    filesystem under storage.root
- InMemoryBlobStorage: dict-backed, for tests and dry runs
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Set

from docvault.documents.models import StorageRef
from docvault.engine.errors import DocVaultStorageError

logger = logging.getLogger("docvault.integrations.blob_storage")


def safe_filename(filename: str) -> str:
    """
    Sanitize a filename for storage.

    Removes path separators, control chars and leading dots; keeps the
    extension; caps the length at 200.
    """
    name = os.path.basename(filename.replace("\\", "/"))
    name = "".join(c for c in name if c.isprintable() and c not in '<>:"/\\|?*')
    name = name.lstrip(".")
    if not name:
        name = "unnamed_document"
    if len(name) > 200:
        base, ext = os.path.splitext(name)
        name = base[:200 - len(ext)] + ext
    return name


def _unique_path(prefix: str, file_name: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{prefix.strip('/')}/{stamp}_{uuid.uuid4().hex[:8]}_{safe_filename(file_name)}"


class BlobStorage(ABC):
    """Blob storage collaborator interface."""

    supports_copy: bool = False

    @abstractmethod
    async def put(
        self,
        data: bytes,
        file_name: str,
        mime_type: str = "application/octet-stream",
        prefix: str = "documents",
    ) -> StorageRef:
        ...

    @abstractmethod
    async def delete(self, ref: StorageRef) -> bool:
        ...

    async def copy(self, ref: StorageRef, new_name: str) -> StorageRef:
        raise NotImplementedError(f"{type(self).__name__} does not support copy")


class LocalBlobStorage(BlobStorage):
    """
    Filesystem storage: {root}/{prefix}/{timestamp}_{rand}_{safe_name}.

    File I/O runs in a worker thread so deletes in a batch overlap.
    """

    supports_copy = True

    def __init__(self, root: str = ".docvault/storage", base_url: str = "file://"):
        self._root = Path(root)
        self._base_url = base_url

    @classmethod
    def from_config(cls, config=None) -> "LocalBlobStorage":
        if config is None:
            from docvault.engine.config import get_config
            config = get_config()
        return cls(root=config.storage.root, base_url=config.storage.base_url)

    @property
    def root(self) -> Path:
        return self._root

    def _url_for(self, relative_path: str) -> str:
        if self._base_url == "file://":
            return (self._root / relative_path).resolve().as_uri()
        return f"{self._base_url.rstrip('/')}/{relative_path}"

    def _physical(self, path: str) -> Path:
        physical = (self._root / path).resolve()
        if self._root.resolve() not in physical.parents:
            raise DocVaultStorageError(
                f"Storage path escapes root: {path}",
                storage_path=path,
            )
        return physical

    async def put(
        self,
        data: bytes,
        file_name: str,
        mime_type: str = "application/octet-stream",
        prefix: str = "documents",
    ) -> StorageRef:
        relative_path = _unique_path(prefix, file_name)
        await asyncio.to_thread(self._write, relative_path, data)
        return StorageRef(url=self._url_for(relative_path), path=relative_path)

    def _write(self, relative_path: str, data: bytes) -> None:
        physical = self._physical(relative_path)
        physical.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(physical, "wb") as f:
                f.write(data)
        except OSError as e:
            raise DocVaultStorageError(
                f"Cannot write blob {relative_path}: {e}",
                storage_path=relative_path,
            ) from e
        logger.info(
            f"Stored: {relative_path} ({len(data)} bytes, "
            f"sha256={hashlib.sha256(data).hexdigest()[:12]})"
        )

    async def delete(self, ref: StorageRef) -> bool:
        return await asyncio.to_thread(self._delete, ref.path)

    def _delete(self, path: str) -> bool:
        physical = self._physical(path)
        if not physical.exists():
            logger.warning(f"Blob already absent: {path}")
            return False
        try:
            physical.unlink()
        except OSError as e:
            raise DocVaultStorageError(
                f"Cannot delete blob {path}: {e}",
                storage_path=path,
            ) from e
        logger.info(f"Deleted blob: {path}")
        return True

    async def copy(self, ref: StorageRef, new_name: str) -> StorageRef:
        source = self._physical(ref.path)
        data = await asyncio.to_thread(source.read_bytes)
        prefix = str(Path(ref.path).parent)
        return await self.put(data, new_name, prefix=prefix)

    def read(self, ref: StorageRef) -> bytes:
        return self._physical(ref.path).read_bytes()


class InMemoryBlobStorage(BlobStorage):
    """
    Dict-backed storage. Paths listed in fail_paths fail on delete, which
    lets tests exercise partial-failure reporting.
    """

    supports_copy = True

    def __init__(self, fail_paths: Optional[Set[str]] = None):
        self._blobs: Dict[str, bytes] = {}
        self.fail_paths: Set[str] = set(fail_paths or ())

    async def put(
        self,
        data: bytes,
        file_name: str,
        mime_type: str = "application/octet-stream",
        prefix: str = "documents",
    ) -> StorageRef:
        path = _unique_path(prefix, file_name)
        self._blobs[path] = bytes(data)
        return StorageRef(url=f"memory://{path}", path=path)

    async def delete(self, ref: StorageRef) -> bool:
        if ref.path in self.fail_paths:
            raise DocVaultStorageError(f"Simulated failure deleting {ref.path}", storage_path=ref.path)
        return self._blobs.pop(ref.path, None) is not None

    async def copy(self, ref: StorageRef, new_name: str) -> StorageRef:
        if ref.path not in self._blobs:
            raise DocVaultStorageError(f"Blob not found: {ref.path}", storage_path=ref.path)
        return await self.put(self._blobs[ref.path], new_name)

    def __contains__(self, path: str) -> bool:
        return path in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
