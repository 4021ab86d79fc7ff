"""
DocVault Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import pytest

from docvault.documents.stores import InMemoryDocumentStore, InMemoryFolderStore
from docvault.engine.context import ActorContext
from docvault.engine.locks import InProcessKeyedLock
from docvault.integrations.blob_storage import InMemoryBlobStorage


# ---------------------------------------------------------------------------
# Environment setup — no real Redis / databases in unit tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Reset global singletons between tests; never pick up a real docvault.yaml."""
    import docvault.engine.config as cfg_mod
    import docvault.engine.logging as log_mod

    monkeypatch.chdir(tmp_path)
    cfg_mod._config = None
    yield
    cfg_mod._config = None
    if log_mod._global_queue is not None:
        log_mod.shutdown_logging()


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------

@pytest.fixture
def admin():
    return ActorContext(user_id="admin1", role="admin", has_document_access=True, email="admin@example.com")


@pytest.fixture
def alice():
    return ActorContext(user_id="u1", role="employee", has_document_access=True, email="alice@example.com")


@pytest.fixture
def bob():
    return ActorContext(user_id="u2", role="employee", has_document_access=True, email="bob@example.com")


@pytest.fixture
def mallory():
    return ActorContext(user_id="u3", role="employee", has_document_access=False)


# ---------------------------------------------------------------------------
# Stores and collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def doc_store():
    return InMemoryDocumentStore()


@pytest.fixture
def folder_store():
    return InMemoryFolderStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStorage()


@pytest.fixture
def lock():
    return InProcessKeyedLock()


@pytest.fixture
def sqlite_factory():
    """In-memory SQLite shared across threads (stores run in asyncio.to_thread)."""
    from sqlalchemy import create_engine
    from sqlalchemy.pool import StaticPool

    from docvault.db.base import engine_registry
    from docvault.db.session import ENGINE_NAME, init_db

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = init_db(engine=engine, create_tables=True)
    yield factory
    engine_registry.dispose(ENGINE_NAME)
