"""
DocVault Access-Control Propagator — Restriction updates with downward cascade.

update_access_control(folder_id, {is_restricted, allowed_user_ids}, actor):

1. Load the folder (NotFound)
2. The actor must currently pass check_access on it (Forbidden)
3. Persist the new settings plus updated_by / updated_at on the folder
4. Restricting: every transitive descendant gets the identical settings,
   written concurrently as a blind overwrite (no merge with a child's
   existing allow-list). Per-folder failures are collected.
5. Un-restricting: descendants are left alone unless the caller opts in
   with cascade_unrestrict=True.

The whole sequence holds the folder's keyed lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docvault.documents.models import AccessControlUpdate, Folder, utcnow
from docvault.documents.stores import FolderStore
from docvault.engine.batch import BatchResult, run_batch
from docvault.engine.context import ActorContext
from docvault.engine.locks import KeyedLock, folder_key, get_default_lock
from docvault.engine.logging import log, log_access_change
from docvault.folders.tree import FolderTree
from docvault.security.permissions import FolderPermissionResolver

logger = logging.getLogger("docvault.folders.access_control")


@dataclass
class PropagationResult:
    """Updated folder plus the per-descendant outcome of the cascade."""
    folder: Folder
    descendants: BatchResult[str] = field(default_factory=BatchResult)
    cascaded: bool = False

    @property
    def partial_failure(self) -> bool:
        return not self.descendants.ok

    @property
    def updated_descendant_ids(self) -> List[str]:
        return list(self.descendants.succeeded)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folder_id": self.folder.id,
            "is_restricted": self.folder.is_restricted,
            "allowed_user_ids": sorted(self.folder.allowed_user_ids),
            "cascaded": self.cascaded,
            "descendants_updated": self.descendants.success_count,
            "failures": [f.to_dict() for f in self.descendants.failed],
        }


class AccessControlPropagator:
    """
    Usage:
        propagator = AccessControlPropagator(folder_store)
        result = await propagator.update_access_control(
            "f1", AccessControlUpdate(is_restricted=True, allowed_user_ids={"u1"}), actor
        )
    """

    def __init__(
        self,
        folder_store: FolderStore,
        resolver: Optional[FolderPermissionResolver] = None,
        lock: Optional[KeyedLock] = None,
    ):
        self._folders = folder_store
        self._resolver = resolver or FolderPermissionResolver(folder_store)
        self._lock = lock if lock is not None else get_default_lock()

    async def update_access_control(
        self,
        folder_id: str,
        update: AccessControlUpdate,
        actor: ActorContext,
        cascade_unrestrict: bool = False,
    ) -> PropagationResult:
        async with self._lock.hold(folder_key(folder_id)):
            folder = await self._resolver.get_folder(folder_id)
            self._resolver.require(
                bool(self._resolver.check_access(folder, actor.user_id, actor.role)),
                folder,
                actor,
                "update access control of",
            )

            now = utcnow()
            allowed = set(update.allowed_user_ids)
            updated = await self._folders.update(
                folder_id,
                is_restricted=update.is_restricted,
                allowed_user_ids=allowed,
                has_explicit_allow_list=True,
                updated_by=actor.user_id,
                updated_at=now,
            )

            descendants: BatchResult[str] = BatchResult()
            cascaded = update.is_restricted or cascade_unrestrict
            if cascaded:
                tree = await FolderTree.from_store(self._folders)
                if update.is_restricted:
                    fields = dict(
                        is_restricted=True,
                        allowed_user_ids=allowed,
                        has_explicit_allow_list=True,
                        updated_by=actor.user_id,
                        updated_at=now,
                    )
                else:
                    fields = dict(is_restricted=False, updated_by=actor.user_id, updated_at=now)

                descendants = await run_batch(
                    tree.descendants(folder_id),
                    lambda fid: self._folders.update(fid, **fields),
                    kind="access_propagation",
                )

        if descendants.failed:
            logger.warning(
                f"Access control on {folder_id} updated; "
                f"{descendants.failure_count} descendant update(s) failed"
            )
        logger.info(
            f"Access control on {folder_id} set to restricted={update.is_restricted} "
            f"by {actor.user_id} ({descendants.success_count} descendant(s) updated)"
        )
        log(log_access_change(
            folder_id=folder_id,
            user_id=actor.user_id,
            is_restricted=update.is_restricted,
            allowed_user_ids=list(allowed),
            descendants_updated=descendants.success_count,
            failures=descendants.failure_count,
            execution_id=actor.execution_id,
        ))
        return PropagationResult(folder=updated, descendants=descendants, cascaded=cascaded)
