"""
DocVault Batch Execution — Concurrent best-effort fan-out.

Every fan-out in the engine (blob deletes, document deletes, latest-flag
demotion, descendant access-control writes, notification dispatch) goes
through run_batch(). All items are issued concurrently and awaited together;
one item's failure never cancels its siblings. The outcome of each item is
kept so callers can tell "fully succeeded" from "succeeded with N failures".
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, List, TypeVar

logger = logging.getLogger("docvault.engine.batch")

T = TypeVar("T")


@dataclass
class BatchFailure:
    """One failed item of a batch."""
    item_id: str
    kind: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"item_id": self.item_id, "kind": self.kind, "error": self.error}


@dataclass
class BatchResult(Generic[T]):
    """Aggregated outcome of a best-effort batch: {succeeded: [T], failed: [...]}."""
    succeeded: List[T] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def merge(self, other: "BatchResult[T]") -> "BatchResult[T]":
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": [str(s) for s in self.succeeded],
            "failed": [f.to_dict() for f in self.failed],
        }


async def run_batch(
    items: Iterable[T],
    operation: Callable[[T], Awaitable[Any]],
    *,
    kind: str,
    key: Callable[[T], str] = str,
) -> BatchResult[T]:
    """
    Run operation(item) for every item concurrently and collect outcomes.

    An item counts as failed when the operation raises, or when it returns
    exactly False (collaborators that report failure instead of raising).

    Args:
        items: Items to process.
        operation: Async callable applied to each item.
        kind: Failure kind recorded on BatchFailure (e.g. "blob_delete").
        key: Maps an item to the id reported in failures.
    """
    items = list(items)
    result: BatchResult[T] = BatchResult()
    if not items:
        return result

    outcomes = await asyncio.gather(
        *(operation(item) for item in items),
        return_exceptions=True,
    )

    for item, outcome in zip(items, outcomes):
        if isinstance(outcome, BaseException):
            # CancelledError / KeyboardInterrupt are not item failures
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning(f"{kind} failed for {key(item)}: {outcome}")
            result.failed.append(BatchFailure(key(item), kind, str(outcome) or type(outcome).__name__))
        elif outcome is False:
            logger.warning(f"{kind} reported failure for {key(item)}")
            result.failed.append(BatchFailure(key(item), kind, "reported failure"))
        else:
            result.succeeded.append(item)

    return result
