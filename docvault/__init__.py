"""
DocVault — Document Version Chain & Folder Permission Engine
Version: 1.0

Race-aware version lineages for uploaded and restored documents, folder
access control with downward propagation, and cascading folder-subtree
deletion with partial-failure reporting.

Entry points:

    docvault.documents   VersionChainManager, DocumentService
    docvault.folders     AccessControlPropagator, CascadingDeletionOrchestrator, FolderService
    docvault.security    FolderPermissionResolver
    docvault.db          SQLAlchemy-backed stores
"""

__version__ = "1.0.0"
__all__ = ["engine", "documents", "folders", "security", "integrations", "db"]
