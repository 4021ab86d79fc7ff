"""DocVault Folders — Tree walk, access-control propagation, cascading deletion."""

from docvault.folders.access_control import AccessControlPropagator, PropagationResult
from docvault.folders.deletion import CascadingDeletionOrchestrator, DeletionPhase, DeletionReport
from docvault.folders.service import FolderService
from docvault.folders.tree import FolderTree

__all__ = [
    "AccessControlPropagator",
    "PropagationResult",
    "CascadingDeletionOrchestrator",
    "DeletionPhase",
    "DeletionReport",
    "FolderService",
    "FolderTree",
]
