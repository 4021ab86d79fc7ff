"""Unit tests for docvault.engine.logging — FileLogger, AsyncLogQueue, entry builders."""

import json

import pytest

import docvault.engine.logging as log_mod
from docvault.engine.logging import (
    OBJECT_TYPE_CATEGORIES,
    AsyncLogQueue,
    FileLogger,
    LogEntry,
    log,
    log_access_change,
    log_folder_deletion,
    log_security_event,
    log_system_event,
    log_version_event,
)


class TestObjectTypeCategories:

    def test_types(self):
        assert set(OBJECT_TYPE_CATEGORIES) == {"documents", "folders", "system"}

    def test_categories(self):
        for cats in OBJECT_TYPE_CATEGORIES.values():
            assert set(cats) == {"execution", "security"}


class TestLogEntry:

    def test_to_json(self):
        entry = LogEntry("documents", "execution", {"event": "x", "n": 1})
        assert json.loads(entry.to_json()) == {"event": "x", "n": 1}


class TestFileLogger:

    def test_creates_directories(self, tmp_path):
        FileLogger(log_dir=str(tmp_path / "logs"))
        for obj_type, cats in OBJECT_TYPE_CATEGORIES.items():
            for cat in cats:
                assert (tmp_path / "logs" / obj_type / cat).is_dir()

    def test_write_and_read_today(self, tmp_path):
        fl = FileLogger(log_dir=str(tmp_path))
        fl.write(log_system_event("startup"))
        fl.write_batch([
            log_folder_deletion("f1", "u1", 3, 3, 2, 0),
            log_folder_deletion("f2", "u1", 1, 0, 0, 1),
        ])
        assert len(fl.read_today("system", "execution")) == 1
        entries = fl.read_today("folders", "execution")
        assert [e["object_ref"] for e in entries] == ["folders.f1", "folders.f2"]
        assert fl.read_today("folders", "execution", filters={"level": "WARNING"})[0]["failures"] == 1

    def test_read_today_missing(self, tmp_path):
        assert FileLogger(log_dir=str(tmp_path)).read_today("documents", "security") == []


class TestAsyncLogQueue:

    def test_push_and_drain_on_stop(self, tmp_path):
        fl = FileLogger(log_dir=str(tmp_path))
        queue = AsyncLogQueue(fl, flush_interval_ms=10, flush_batch_size=5)
        queue.start()
        for i in range(7):
            assert queue.push(log_system_event(f"event_{i}"))
        queue.stop()
        assert len(fl.read_today("system", "execution")) == 7
        assert queue.pending_count == 0

    def test_full_queue_drops(self, tmp_path):
        queue = AsyncLogQueue(FileLogger(log_dir=str(tmp_path)), max_queue_size=1)
        assert queue.push(log_system_event("a")) is True
        assert queue.push(log_system_event("b")) is False
        assert queue.dropped_count == 1


class TestBuilders:

    def test_version_event(self):
        entry = log_version_event(
            "version_restored", "d3", "d1", 3, "u1",
            execution_id="exec_1", restored_from_version=1,
        )
        assert entry.object_type == "documents"
        assert entry.data["object_ref"] == "documents.d3"
        assert entry.data["lineage_root_id"] == "d1"
        assert entry.data["restored_from_version"] == 1
        assert entry.data["level"] == "INFO"

    def test_version_event_with_demotion_failures_warns(self):
        entry = log_version_event("version_created", "d2", "d1", 2, "u1", demotion_failures=1)
        assert entry.data["level"] == "WARNING"

    def test_access_change_sorts_users(self):
        entry = log_access_change("f1", "u1", True, ["u9", "u1"], descendants_updated=2)
        assert entry.data["allowed_user_ids"] == ["u1", "u9"]
        assert entry.object_type == "folders"

    def test_security_event_category(self):
        entry = log_security_event("permission_denied", "folders.f1", "u3", role="employee")
        assert (entry.object_type, entry.category) == ("folders", "security")

    def test_security_event_unknown_prefix_goes_to_system(self):
        entry = log_security_event("permission_denied", "weird.thing", "u3")
        assert entry.object_type == "system"


class TestGlobalQueue:

    def test_log_without_queue_is_dropped(self):
        assert log_mod.get_log_queue() is None
        assert log(log_system_event("x")) is False

    def test_init_log_shutdown(self, tmp_path):
        queue = log_mod.init_logging(log_dir=str(tmp_path), flush_interval_ms=10)
        assert log_mod.get_log_queue() is queue
        assert log(log_system_event("hello")) is True
        log_mod.shutdown_logging()
        assert log_mod.get_log_queue() is None
        entries = FileLogger(log_dir=str(tmp_path)).read_today("system", "execution")
        assert entries[0]["event"] == "hello"
