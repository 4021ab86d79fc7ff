"""
DocVault Error Hierarchy — Structured exceptions for the document engine.

Every error carries a message plus free-form context, serializable to JSON
for the structured event log. NotFound and Forbidden abort an operation
before any mutation; partial failures of batch operations are never raised,
they are reported through BatchResult / DeletionReport instead.

Hierarchy:
    DocVaultError
    ├── DocVaultNotFoundError    — Referenced document/folder does not exist
    ├── DocVaultSecurityError    — Actor lacks permission for the mutation
    ├── DocVaultValidationError  — Input validation failed
    ├── DocVaultStorageError     — Blob storage collaborator failed
    └── DocVaultConfigError      — Invalid docvault.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple

_ENVELOPE_KEYS = ("execution_id", "object_ref")


class DocVaultError(Exception):
    """
    Base error for all DocVault engine failures.

    Subclasses list the context keys they promote to attributes in
    `fields`; those appear at the top level of to_dict(), everything else
    under "context" as strings.
    """

    fields: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.error_type: str = type(self).__name__
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        self.context: Dict[str, Any] = context
        self.execution_id: Optional[str] = context.get("execution_id")
        self.object_ref: Optional[str] = context.get("object_ref")
        for name in self.fields:
            setattr(self, name, context.get(name))

    def to_dict(self) -> Dict[str, Any]:
        promoted = set(_ENVELOPE_KEYS) | set(self.fields)
        d: Dict[str, Any] = {
            "error_type": self.error_type,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        for name in _ENVELOPE_KEYS + self.fields:
            d[name] = getattr(self, name)
        d["context"] = {k: str(v) for k, v in self.context.items() if k not in promoted}
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        extras = [f"{k}={getattr(self, k)}" for k in ("object_ref", "execution_id") if getattr(self, k)]
        return " | ".join([f"{self.error_type}: {self.message}", *extras])


class DocVaultNotFoundError(DocVaultError):
    """Referenced document or folder id does not exist. Never retried."""

    fields = ("record_type", "record_id")


class DocVaultSecurityError(DocVaultError):
    """Access denied. Logged to the security event category."""

    fields = ("user_id", "role", "required_permission")


class DocVaultValidationError(DocVaultError):
    """
    Input validation failed (empty upload, MIME type, size limit,
    version that belongs to a different lineage).
    """

    fields = ("validation_errors",)


class DocVaultStorageError(DocVaultError):
    """Blob storage put/delete/copy failed."""

    fields = ("storage_path",)


class DocVaultConfigError(DocVaultError):
    """Invalid or unreadable docvault.yaml."""

    fields = ("config_path",)
