"""
DocVault Folder Tree — In-memory adjacency over the flat folders collection.

Folders are stored flat with only a parent_id pointer. FolderTree builds a
networkx DiGraph (edge parent → child) from one full scan and answers
subtree / ancestor questions from it:

- descendants(): BFS discovery order, excluding the start folder
- subtree(): [folder_id, *descendants]
- deletion_order(): reverse discovery order, requested folder last
- ancestors(): parent chain up to the root

Rebuilding from a full scan is O(all folders) per operation. Fine at the
scale DocVault runs at; callers that need more should index parent_id.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import networkx as nx

from docvault.documents.models import Folder

logger = logging.getLogger("docvault.folders.tree")


class FolderTree:
    """Parent → child DiGraph built from a snapshot of folder records."""

    def __init__(self, folders: Iterable[Folder]):
        self._graph = nx.DiGraph()
        self._folders: Dict[str, Folder] = {}

        for folder in sorted(folders, key=lambda f: f.id):
            self._folders[folder.id] = folder
            self._graph.add_node(folder.id)

        for folder in self._folders.values():
            if folder.parent_id is None:
                continue
            if folder.parent_id == folder.id:
                logger.warning(f"Folder {folder.id} is its own parent; edge ignored")
                continue
            if folder.parent_id in self._folders:
                self._graph.add_edge(folder.parent_id, folder.id)

    @classmethod
    async def from_store(cls, folder_store) -> "FolderTree":
        """Full scan of the folder store."""
        return cls(await folder_store.list_all())

    def __contains__(self, folder_id: str) -> bool:
        return folder_id in self._folders

    def __len__(self) -> int:
        return len(self._folders)

    def get(self, folder_id: str) -> Optional[Folder]:
        return self._folders.get(folder_id)

    def children(self, folder_id: Optional[str]) -> List[str]:
        if folder_id is None:
            return [fid for fid, f in self._folders.items() if f.parent_id is None]
        if folder_id not in self._graph:
            return []
        return list(self._graph.successors(folder_id))

    def descendants(self, folder_id: str) -> List[str]:
        """All transitive children in BFS discovery order."""
        if folder_id not in self._graph:
            return []
        # bfs_edges visits each node once, so a corrupt parent cycle terminates
        return [child for _, child in nx.bfs_edges(self._graph, folder_id)]

    def subtree(self, folder_id: str) -> List[str]:
        return [folder_id, *self.descendants(folder_id)]

    def deletion_order(self, folder_id: str) -> List[str]:
        """Children strictly before parents; the requested folder comes last."""
        return list(reversed(self.subtree(folder_id)))

    def ancestors(self, folder_id: str) -> List[str]:
        """Parent chain, nearest first. Stops at a missing parent or a cycle."""
        chain: List[str] = []
        seen = {folder_id}
        current = self._folders.get(folder_id)
        while current is not None and current.parent_id is not None:
            parent_id = current.parent_id
            if parent_id in seen:
                logger.warning(f"Parent cycle detected at folder {parent_id}")
                break
            chain.append(parent_id)
            seen.add(parent_id)
            current = self._folders.get(parent_id)
        return chain

    def depth(self, folder_id: str) -> int:
        return len(self.ancestors(folder_id))
