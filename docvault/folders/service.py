"""
DocVault Folder Service — Folder create / rename / permission maintenance.

Thin facade over the folder store and the permission resolver. Restriction
changes and subtree deletion live in AccessControlPropagator and
CascadingDeletionOrchestrator; this service does the rest:

- create_folder: creator gets an "admin" permission entry; a child of a
  restricted parent starts restricted with the parent's allow-list
- rename_folder / update_permissions: admin, creator or permission entry
- repair_permissions: admin-only maintenance for legacy folders
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Iterable, List, Optional, Union

from docvault.documents.models import Folder, FolderPermission, utcnow
from docvault.documents.stores import FolderStore
from docvault.engine.batch import run_batch
from docvault.engine.context import ActorContext
from docvault.engine.errors import DocVaultSecurityError, DocVaultValidationError
from docvault.engine.locks import KeyedLock, folder_key, get_default_lock
from docvault.engine.logging import log, log_security_event, log_system_event
from docvault.security.permissions import FolderNode, FolderPermissionResolver

logger = logging.getLogger("docvault.folders.service")


def new_folder_id() -> str:
    return uuid.uuid4().hex


class FolderService:
    """
    Usage:
        service = FolderService(folder_store)
        folder = await service.create_folder("Contracts", None, actor)
    """

    def __init__(
        self,
        folder_store: FolderStore,
        resolver: Optional[FolderPermissionResolver] = None,
        lock: Optional[KeyedLock] = None,
        id_factory: Callable[[], str] = new_folder_id,
    ):
        self._folders = folder_store
        self._resolver = resolver or FolderPermissionResolver(folder_store)
        self._lock = lock if lock is not None else get_default_lock()
        self._new_id = id_factory

    @property
    def resolver(self) -> FolderPermissionResolver:
        return self._resolver

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise DocVaultValidationError(
                "Folder name is required",
                validation_errors=[{"field": "name", "error": "empty"}],
            )
        if len(cleaned) > 255:
            raise DocVaultValidationError(
                "Folder name exceeds 255 characters",
                validation_errors=[{"field": "name", "error": "too_long"}],
            )
        return cleaned

    async def create_folder(
        self,
        name: str,
        parent_id: Optional[str],
        actor: ActorContext,
        is_restricted: Optional[bool] = None,
        allowed_user_ids: Optional[Iterable[str]] = None,
    ) -> Folder:
        name = self._clean_name(name)

        restricted = bool(is_restricted)
        allowed = {str(u) for u in allowed_user_ids} if allowed_user_ids is not None else set()
        explicit = allowed_user_ids is not None

        if parent_id is not None:
            parent = await self._resolver.get_folder(parent_id)
            self._resolver.require(
                bool(self._resolver.check_access(parent, actor.user_id, actor.role)),
                parent,
                actor,
                "create folders in",
            )
            if parent.is_restricted:
                restricted = True
                allowed |= parent.allowed_user_ids
                explicit = True

        folder = Folder(
            id=self._new_id(),
            name=name,
            parent_id=parent_id,
            is_restricted=restricted,
            allowed_user_ids=allowed,
            has_explicit_allow_list=explicit,
            permissions=[FolderPermission(user_id=actor.user_id, permission="admin", granted_by=actor.user_id)],
            created_by=actor.user_id,
        )
        await self._folders.put(folder)
        logger.info(f"Created folder {folder.id} '{name}' under {parent_id or 'root'} by {actor.user_id}")
        return folder

    async def rename_folder(self, folder_id: str, new_name: str, actor: ActorContext) -> Folder:
        new_name = self._clean_name(new_name)
        async with self._lock.hold(folder_key(folder_id)):
            folder = await self._resolver.get_folder(folder_id)
            self._resolver.require(self._resolver.can_modify(folder, actor), folder, actor, "rename")
            updated = await self._folders.update(
                folder_id, name=new_name, updated_by=actor.user_id, updated_at=utcnow()
            )
        logger.info(f"Renamed folder {folder_id} to '{new_name}'")
        return updated

    async def update_permissions(
        self,
        folder_id: str,
        permissions: Iterable[Union[FolderPermission, dict]],
        actor: ActorContext,
    ) -> Folder:
        """Replace the folder's permission list."""
        entries: List[FolderPermission] = []
        seen = set()
        for raw in permissions:
            if isinstance(raw, FolderPermission):
                entry = raw
            else:
                entry = FolderPermission.model_validate(raw)
                if entry.granted_by is None:
                    entry = entry.model_copy(update={"granted_by": actor.user_id})
            if entry.user_id in seen:
                continue
            seen.add(entry.user_id)
            entries.append(entry)

        async with self._lock.hold(folder_key(folder_id)):
            folder = await self._resolver.get_folder(folder_id)
            self._resolver.require(
                self._resolver.can_modify(folder, actor), folder, actor, "change permissions of"
            )
            updated = await self._folders.update(
                folder_id, permissions=entries, updated_by=actor.user_id, updated_at=utcnow()
            )
        logger.info(f"Folder {folder_id} permissions set to {sorted(seen)} by {actor.user_id}")
        return updated

    async def repair_permissions(self, actor: ActorContext) -> int:
        """
        Give every folder's creator an admin permission entry where it is
        missing. Only the permission list and audit fields are written. Admin
        only.

        Returns the number of folders repaired.
        """
        if not actor.is_admin:
            log(log_security_event(
                event="permission_denied",
                object_ref="folders.repair_permissions",
                user_id=actor.user_id,
                role=actor.role,
                permission_needed="admin",
                execution_id=actor.execution_id,
            ))
            raise DocVaultSecurityError(
                "Only administrators may repair folder permissions",
                user_id=actor.user_id,
                role=actor.role,
                required_permission="admin",
                execution_id=actor.execution_id,
            )

        folders = await self._folders.list_all()
        needing = [f for f in folders if f.created_by and not f.has_permission_entry(f.created_by)]

        repaired: List[str] = []

        async def _repair(folder: Folder) -> Any:
            # Re-read under the lock; only the permission list is written
            async with self._lock.hold(folder_key(folder.id)):
                current = await self._folders.get(folder.id)
                if current is None or not current.created_by or current.has_permission_entry(current.created_by):
                    return current
                entry = FolderPermission(user_id=current.created_by, permission="admin", granted_by=actor.user_id)
                updated = await self._folders.update(
                    folder.id,
                    permissions=[*current.permissions, entry],
                    updated_by=actor.user_id,
                    updated_at=utcnow(),
                )
            repaired.append(folder.id)
            return updated

        result = await run_batch(needing, _repair, kind="permission_repair", key=lambda f: f.id)
        logger.info(
            f"Repaired {len(repaired)} of {len(folders)} folder(s) "
            f"({result.failure_count} failure(s))"
        )
        log(log_system_event("folder_permissions_repaired", details={
            "folders_scanned": len(folders),
            "repaired": len(repaired),
            "failures": result.failure_count,
            "user_id": actor.user_id,
        }))
        return len(repaired)

    async def get_folders_by_user_access(self, actor: ActorContext) -> List[Folder]:
        return await self._resolver.list_accessible_folders(actor.user_id, actor.role)

    async def get_folder_tree(self, actor: ActorContext) -> List[FolderNode]:
        return await self._resolver.accessible_folder_tree(actor.user_id, actor.role)
