"""
DocVault Folder Permissions — Per-folder access resolution.

Access rule, evaluated independently per folder (no ancestor walk):

    granted if  role == admin
            or  folder.created_by == user
            or  not folder.is_restricted
            or  user in folder.allowed_user_ids
            or  user has an entry in folder.permissions
    denied otherwise

Ancestor restriction is not inherited at read time. It reaches descendants
only because the AccessControlPropagator copies restriction settings down
at write time, so a read is O(1) per folder.

Deletion uses a narrower rule (see can_delete) and modification of
permission lists narrower still (can_modify).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from docvault.documents.models import Folder
from docvault.documents.stores import FolderStore
from docvault.engine.context import ROLE_ADMIN, ActorContext
from docvault.engine.errors import DocVaultNotFoundError, DocVaultSecurityError
from docvault.engine.logging import log, log_security_event

logger = logging.getLogger("docvault.security.permissions")


class AccessDecision(enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"

    def __bool__(self) -> bool:
        return self is AccessDecision.GRANTED


@dataclass(eq=False)
class FolderNode:
    """A folder with its visible children, for navigation trees."""
    folder: Folder
    children: List["FolderNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.folder.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.folder.id,
            "name": self.folder.name,
            "parent_id": self.folder.parent_id,
            "is_restricted": self.folder.is_restricted,
            "children": [child.to_dict() for child in self.children],
        }


def _sibling_key(node: FolderNode):
    return (node.folder.name.casefold(), node.folder.id)


def build_folder_tree(folders: Iterable[Folder]) -> List[FolderNode]:
    """
    Group folders on parent_id into a forest.

    Siblings are sorted by name, case-insensitive. A folder whose parent is
    not in the given set (filtered out, or a dangling pointer) becomes a
    root, so nothing the user may see is hidden behind a folder they may not.
    """
    nodes = {f.id: FolderNode(folder=f) for f in folders}
    roots: List[FolderNode] = []

    for node in nodes.values():
        parent_id = node.folder.parent_id
        if parent_id is not None and parent_id != node.id and parent_id in nodes:
            nodes[parent_id].children.append(node)
        else:
            roots.append(node)

    # A parent cycle leaves its members unreachable from any root
    reachable = set()
    stack = list(roots)
    while stack:
        node = stack.pop()
        reachable.add(node.id)
        stack.extend(node.children)
    for node in nodes.values():
        if node.id not in reachable:
            logger.warning(f"Folder {node.id} is part of a parent cycle; promoted to root")
            parent = nodes.get(node.folder.parent_id)
            if parent is not None:
                parent.children = [c for c in parent.children if c is not node]
            roots.append(node)
            reachable.update(_walk_ids(node))

    def _sort(level: List[FolderNode]) -> None:
        level.sort(key=_sibling_key)
        for n in level:
            _sort(n.children)

    _sort(roots)
    return roots


def _walk_ids(node: FolderNode) -> List[str]:
    ids = [node.id]
    for child in node.children:
        ids.extend(_walk_ids(child))
    return ids


class FolderPermissionResolver:
    """
    Resolves folder access for a user.

    Usage:
        resolver = FolderPermissionResolver(folder_store)
        if resolver.check_access(folder, actor.user_id, actor.role):
            ...
        tree = await resolver.accessible_folder_tree(actor.user_id, actor.role)
    """

    def __init__(self, folder_store: FolderStore):
        self._folders = folder_store

    # -----------------------------------------------------------------------
    # Per-folder rules
    # -----------------------------------------------------------------------

    def check_access(self, folder: Folder, user_id: str, role: Optional[str]) -> AccessDecision:
        if role == ROLE_ADMIN:
            return AccessDecision.GRANTED
        if folder.created_by is not None and folder.created_by == user_id:
            return AccessDecision.GRANTED
        if not folder.is_restricted:
            return AccessDecision.GRANTED
        if user_id in folder.allowed_user_ids:
            return AccessDecision.GRANTED
        if folder.has_permission_entry(user_id):
            return AccessDecision.GRANTED
        return AccessDecision.DENIED

    def can_modify(self, folder: Folder, actor: ActorContext) -> bool:
        """Rename / edit the permission list: admin, creator, or permission entry."""
        return (
            actor.is_admin
            or (folder.created_by is not None and folder.created_by == actor.user_id)
            or folder.has_permission_entry(actor.user_id)
        )

    def can_delete(self, folder: Folder, actor: ActorContext) -> bool:
        """
        Cascading delete authorization.

        Beyond can_modify, an unrestricted folder may be deleted by a user on
        its allow-list, or by anyone when it never had an allow-list at all
        (legacy-open folders).
        """
        if self.can_modify(folder, actor):
            return True
        if folder.is_restricted:
            return False
        if not folder.has_explicit_allow_list:
            return True
        return actor.user_id in folder.allowed_user_ids

    def require(self, allowed: bool, folder: Folder, actor: ActorContext, permission: str) -> None:
        """Raise DocVaultSecurityError (and emit a security event) unless allowed."""
        if allowed:
            return
        logger.warning(
            f"Denied {permission} on folder {folder.id} for user {actor.user_id} ({actor.role})"
        )
        log(log_security_event(
            event="permission_denied",
            object_ref=f"folders.{folder.id}",
            user_id=actor.user_id,
            role=actor.role,
            permission_needed=permission,
            execution_id=actor.execution_id,
        ))
        raise DocVaultSecurityError(
            f"User '{actor.user_id}' may not {permission} folder '{folder.id}'",
            user_id=actor.user_id,
            role=actor.role,
            required_permission=permission,
            object_ref=f"folders.{folder.id}",
            execution_id=actor.execution_id,
        )

    # -----------------------------------------------------------------------
    # Listing
    # -----------------------------------------------------------------------

    async def get_folder(self, folder_id: str) -> Folder:
        folder = await self._folders.get(folder_id)
        if folder is None:
            raise DocVaultNotFoundError(
                f"Folder '{folder_id}' not found",
                record_type="folder",
                record_id=folder_id,
                object_ref=f"folders.{folder_id}",
            )
        return folder

    async def list_accessible_folders(self, user_id: str, role: Optional[str]) -> List[Folder]:
        """Full scan, each folder filtered independently."""
        folders = await self._folders.list_all()
        return [f for f in folders if self.check_access(f, user_id, role)]

    async def accessible_folder_tree(self, user_id: str, role: Optional[str]) -> List[FolderNode]:
        return build_folder_tree(await self.list_accessible_folders(user_id, role))

    async def get_access_control(self, folder_id: str) -> Dict[str, Any]:
        """Current restriction settings of one folder."""
        folder = await self.get_folder(folder_id)
        return {
            "folder_id": folder.id,
            "is_restricted": folder.is_restricted,
            "allowed_user_ids": sorted(folder.allowed_user_ids),
            "permissions": [p.model_dump(mode="json") for p in folder.permissions],
        }

    build_folder_tree = staticmethod(build_folder_tree)
