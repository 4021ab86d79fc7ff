"""
DocVault Database Session Management.

Single entry point for DB initialisation plus a commit/rollback context
manager. Uses the global EngineRegistry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from docvault.db.base import Base, engine_registry

logger = logging.getLogger("docvault.db.session")

ENGINE_NAME = "docvault"


def init_db(
    db_url: Optional[str] = None,
    create_tables: bool = False,
    engine: Any = None,
    **engine_kwargs: Any,
) -> sessionmaker:
    """
    Register the "docvault" engine and return its session factory.

    Args:
        db_url:        SQLAlchemy URL. Defaults to database.url from docvault.yaml.
        create_tables: Run Base.metadata.create_all() (dev / `docvault init-db`).
        engine:        Prebuilt engine; overrides db_url.
    """
    # Table classes must be imported before create_all
    from docvault.db import models  # noqa: F401

    if engine is not None:
        engine_registry.register_engine(ENGINE_NAME, engine)
    else:
        if db_url is None:
            from docvault.engine.config import get_config
            cfg = get_config().database
            db_url = cfg.url
            engine_kwargs.setdefault("pool_pre_ping", cfg.pool_pre_ping)
            engine_kwargs.setdefault("echo", cfg.echo)
        engine_registry.register(ENGINE_NAME, db_url, **engine_kwargs)

    if create_tables:
        Base.metadata.create_all(engine_registry.get(ENGINE_NAME))
        logger.info("DocVault tables created")

    return engine_registry.get_session_factory(ENGINE_NAME)


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope() as session:
            session.get(FolderRow, folder_id)
    """
    session = factory() if factory is not None else engine_registry.get_session(ENGINE_NAME)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_db() -> None:
    """Dispose the DocVault engine. Used during shutdown."""
    engine_registry.dispose(ENGINE_NAME)
