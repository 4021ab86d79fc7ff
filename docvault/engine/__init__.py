"""DocVault Engine — Errors, config, logging, actor context, batches and locks."""

from docvault.engine.batch import BatchFailure, BatchResult, run_batch  # noqa: F401
from docvault.engine.context import ActorContext  # noqa: F401
from docvault.engine.locks import InProcessKeyedLock, KeyedLock, NullKeyedLock, RedisKeyedLock  # noqa: F401

__all__ = [
    "ActorContext",
    "BatchFailure",
    "BatchResult",
    "run_batch",
    "KeyedLock",
    "InProcessKeyedLock",
    "NullKeyedLock",
    "RedisKeyedLock",
]
