"""
DocVault Documents.

Document and Folder records plus the persistence interfaces for both flat
collections. The Version Chain Manager lives in docvault.documents.versions
and the upload/delete facade in docvault.documents.service.
"""

from docvault.documents.models import AccessControlUpdate, Document, DocumentContent, Folder, FolderPermission, StorageRef
from docvault.documents.stores import DocumentStore, FolderStore, InMemoryDocumentStore, InMemoryFolderStore

__all__ = [
    "AccessControlUpdate",
    "Document",
    "DocumentContent",
    "Folder",
    "FolderPermission",
    "StorageRef",
    "DocumentStore",
    "FolderStore",
    "InMemoryDocumentStore",
    "InMemoryFolderStore",
]
