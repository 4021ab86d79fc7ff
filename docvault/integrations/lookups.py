"""
DocVault Directory Lookups — Read-only Tag / User / Department records.

Used only to enrich responses for display and to resolve collaborator
contacts. get_by_id returns None for unknown ids; callers degrade to a
placeholder and never raise.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger("docvault.integrations.lookups")


class DirectoryLookup(ABC):
    """Read-only record lookup by id."""

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        ...


class InMemoryDirectory(DirectoryLookup):
    """
    Dict-backed directory.

    Usage:
        users = InMemoryDirectory({"u1": {"id": "u1", "email": "a@x.io", "name": "Ann"}})
    """

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None):
        self._records: Dict[str, Dict[str, Any]] = dict(records or {})

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "InMemoryDirectory":
        return cls({str(r["id"]): r for r in records})

    def add(self, record: Dict[str, Any]) -> None:
        self._records[str(record["id"])] = record

    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(str(record_id))
        return dict(record) if record is not None else None


def placeholder(kind: str, record_id: Optional[str]) -> Dict[str, Any]:
    """Display stand-in for a missing record."""
    labels = {
        "tag": "Unknown tag",
        "user": "Unknown user",
        "department": "Unknown department",
    }
    return {"id": record_id, "name": labels.get(kind, "Unknown"), "missing": True}


async def lookup_or_placeholder(
    directory: Optional[DirectoryLookup],
    kind: str,
    record_id: Optional[str],
) -> Dict[str, Any]:
    """get_by_id, degrading to a placeholder on a miss or lookup failure."""
    if directory is None or record_id is None:
        return placeholder(kind, record_id)
    try:
        record = await directory.get_by_id(record_id)
    except Exception as e:
        logger.warning(f"{kind} lookup failed for {record_id}: {e}")
        return placeholder(kind, record_id)
    return record if record is not None else placeholder(kind, record_id)
