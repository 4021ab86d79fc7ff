"""
DocVault Event Log — Structured JSONL audit trail with a background writer.

Two pieces:
- FileLogger: appends entries to {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
- AsyncLogQueue: bounded in-memory buffer drained by a daemon thread, so
  request paths never block on disk I/O

Entry builders below produce the events the engine emits: version created /
restored, access control changed, folder subtree deleted, permission denied,
maintenance runs.

Usage:
    init_logging(log_dir=".docvault/logs")
    log(log_folder_deletion("f1", "u1", 3, 3, 3, 0))
    shutdown_logging()
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timezone
from itertools import groupby
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger("docvault.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "documents": ["execution", "security"],
    "folders": ["execution", "security"],
    "system": ["execution", "security"],
}


class LogEntry:
    """One JSON line plus the file it belongs in."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    @property
    def stream(self) -> str:
        return f"{self.object_type}/{self.category}"

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Append-only JSONL writer, one file per object type, category and day.

    Safe to call from several threads: appends to the same stream are
    serialized by a per-stream lock.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._guard = threading.Lock()
        self._stream_locks: Dict[str, threading.Lock] = {}
        for object_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                (self._log_dir / object_type / category).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        day = day or date.today()
        return self._log_dir / object_type / category / f"{day.isoformat()}.jsonl"

    def _lock_for(self, stream: str) -> threading.Lock:
        with self._guard:
            return self._stream_locks.setdefault(stream, threading.Lock())

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: Iterable[LogEntry]) -> None:
        """Append entries, opening each stream's file once per batch."""
        ordered = sorted(entries, key=lambda e: e.stream)
        for stream, group in groupby(ordered, key=lambda e: e.stream):
            batch = list(group)
            path = self.path_for(batch[0].object_type, batch[0].category)
            payload = "".join(f"{entry.to_json()}\n" for entry in batch)
            with self._lock_for(stream):
                with open(path, "a", encoding="utf-8") as f:
                    f.write(payload)

    def read(
        self,
        object_type: str,
        category: str,
        day: Optional[date] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Entries of one stream for one day, in write order. Corrupt lines are skipped."""
        path = self.path_for(object_type, category, day)
        if not path.is_file():
            return []

        results: List[Dict[str, Any]] = []
        for raw in path.read_text(encoding="utf-8").splitlines():
            if not raw.strip():
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug(f"Skipping unreadable line in {path}")
                continue
            if filters and any(record.get(k) != v for k, v in filters.items()):
                continue
            results.append(record)
        return results

    def read_today(
        self,
        object_type: str,
        category: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return self.read(object_type, category, filters=filters)


class AsyncLogQueue:
    """
    Bounded buffer between callers and the FileLogger.

    push() never blocks; when the buffer is full the entry is dropped and
    counted. The writer thread wakes every flush_interval_ms and writes up
    to flush_batch_size entries per file append.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._writer = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = max(1, flush_batch_size)
        self._buffer: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="docvault-event-log", daemon=True)
        self._thread.start()
        logger.info("Event log writer started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the writer thread, then write whatever is still buffered."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        while self._flush_once():
            pass
        logger.info(f"Event log writer stopped ({self._dropped} entries dropped)")

    def push(self, entry: LogEntry) -> bool:
        try:
            self._buffer.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    def _run(self) -> None:
        while not self._stopping.is_set():
            if not self._flush_once():
                self._stopping.wait(self._interval)

    def _flush_once(self) -> bool:
        """Write one batch. Returns False when the buffer was empty."""
        batch: List[LogEntry] = []
        while len(batch) < self._batch_size:
            try:
                batch.append(self._buffer.get_nowait())
            except Empty:
                break
        if not batch:
            return False
        try:
            self._writer.write_batch(batch)
        except OSError as e:
            logger.error(f"Event log write failed, {len(batch)} entries lost: {e}")
        return True

    @property
    def pending_count(self) -> int:
        return self._buffer.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------

def _event(
    event: str,
    object_ref: str,
    level: str = "INFO",
    user_id: Optional[Any] = None,
    execution_id: Optional[str] = None,
    **fields: Any,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "object_ref": object_ref,
    }
    if user_id is not None:
        data["user_id"] = user_id
    if execution_id:
        data["execution_id"] = execution_id
    data.update(fields)
    return data


def _level(failures: int) -> str:
    return "WARNING" if failures else "INFO"


def log_version_event(
    event: str,
    document_id: str,
    lineage_root_id: str,
    version_number: int,
    user_id: Any,
    execution_id: Optional[str] = None,
    demotion_failures: int = 0,
    restored_from_version: Optional[int] = None,
) -> LogEntry:
    """version_created / version_restored."""
    data = _event(
        event,
        f"documents.{document_id}",
        level=_level(demotion_failures),
        user_id=user_id,
        execution_id=execution_id,
        lineage_root_id=lineage_root_id,
        version_number=version_number,
        demotion_failures=demotion_failures,
    )
    if restored_from_version is not None:
        data["restored_from_version"] = restored_from_version
    return LogEntry("documents", "execution", data)


def log_access_change(
    folder_id: str,
    user_id: Any,
    is_restricted: bool,
    allowed_user_ids: List[str],
    descendants_updated: int,
    failures: int = 0,
    execution_id: Optional[str] = None,
) -> LogEntry:
    data = _event(
        "access_control_updated",
        f"folders.{folder_id}",
        level=_level(failures),
        user_id=user_id,
        execution_id=execution_id,
        is_restricted=is_restricted,
        allowed_user_ids=sorted(allowed_user_ids),
        descendants_updated=descendants_updated,
        failures=failures,
    )
    return LogEntry("folders", "execution", data)


def log_folder_deletion(
    folder_id: str,
    user_id: Any,
    folders_deleted: int,
    documents_deleted: int,
    blobs_deleted: int,
    failures: int,
    execution_id: Optional[str] = None,
) -> LogEntry:
    data = _event(
        "folder_subtree_deleted",
        f"folders.{folder_id}",
        level=_level(failures),
        user_id=user_id,
        execution_id=execution_id,
        folders_deleted=folders_deleted,
        documents_deleted=documents_deleted,
        blobs_deleted=blobs_deleted,
        failures=failures,
    )
    return LogEntry("folders", "execution", data)


def log_security_event(
    event: str,
    object_ref: str,
    user_id: Any,
    role: Optional[str] = None,
    permission_needed: Optional[str] = None,
    execution_id: Optional[str] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Denied mutation. Filed under the object type named by object_ref's prefix."""
    data = _event(
        event,
        object_ref,
        level=level,
        user_id=user_id,
        execution_id=execution_id,
        role=role,
        permission_needed=permission_needed,
    )
    object_type = object_ref.partition(".")[0]
    if object_type not in OBJECT_TYPE_CATEGORIES:
        object_type = "system"
    return LogEntry(object_type, "security", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Startup, shutdown and maintenance runs."""
    data = _event(event, "system", level=level)
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Process-wide queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Create and start the process-wide queue, replacing any previous one."""
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
    _global_queue = AsyncLogQueue(
        FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Queue an entry. Dropped (False) when init_logging() has not run."""
    if _global_queue is None:
        logger.debug(f"Event log not initialized; dropped {entry.data.get('event')}")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    global _global_queue
    queue, _global_queue = _global_queue, None
    if queue is not None:
        queue.stop()
