"""
Integration test fixtures — file-backed SQLite, local blob storage, JSONL logs.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises several DocVault subsystems together")


@pytest.fixture
def integration_project(tmp_path, monkeypatch):
    """A project directory with its own docvault.yaml, chdir'd into."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "docvault.yaml").write_text(
        "platform:\n"
        "  name: IntegrationVault\n"
        "environment: dev\n"
        "database:\n"
        f"  url: sqlite:///{root / 'docvault.db'}\n"
        "logging:\n"
        f"  directory: {root / 'logs'}\n"
        "  async_queue:\n"
        "    flush_interval_ms: 10\n"
        "storage:\n"
        f"  root: {root / 'storage'}\n"
        "documents:\n"
        "  max_upload_size_mb: 5\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(root)
    return root
