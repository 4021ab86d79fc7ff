"""
DocVault Database Base — Declarative base and named engine registry.

The registry maps a name ("docvault" in production) to an engine and the
session factory bound to it, so stores and the CLI share one pool.
"""

from __future__ import annotations

from typing import Any, Dict, NamedTuple, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Declarative base for the documents and folders tables."""
    pass


class _Binding(NamedTuple):
    engine: Engine
    factory: sessionmaker


class EngineRegistry:
    """
    Named engines with their session factories.

    Usage:
        registry = EngineRegistry()
        registry.register("docvault", "sqlite:///docvault.db")
        with registry.get_session("docvault") as session:
            ...
    """

    def __init__(self):
        self._bindings: Dict[str, _Binding] = {}

    def register(self, name: str, url: str, **kwargs: Any) -> Engine:
        engine = create_engine(url, **kwargs)
        self.register_engine(name, engine)
        return engine

    def register_engine(self, name: str, engine: Engine) -> None:
        """Bind a prebuilt engine (tests pass a StaticPool SQLite engine)."""
        previous = self._bindings.get(name)
        if previous is not None and previous.engine is not engine:
            previous.engine.dispose()
        self._bindings[name] = _Binding(engine, sessionmaker(bind=engine, expire_on_commit=False))

    def _binding(self, name: str) -> _Binding:
        try:
            return self._bindings[name]
        except KeyError:
            raise KeyError(
                f"No engine registered as '{name}' (known: {sorted(self._bindings)})"
            ) from None

    def get(self, name: str) -> Engine:
        return self._binding(name).engine

    def get_session_factory(self, name: str) -> sessionmaker:
        return self._binding(name).factory

    def get_session(self, name: str) -> Session:
        return self._binding(name).factory()

    def dispose(self, name: Optional[str] = None) -> None:
        """Close the pool of one engine, or of every engine when name is None."""
        names = [name] if name else list(self._bindings)
        for key in names:
            binding = self._bindings.pop(key, None)
            if binding is not None:
                binding.engine.dispose()


engine_registry = EngineRegistry()
