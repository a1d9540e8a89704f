"""Engine and session handling for the local ledger store.

One process talks to one database. The first call binds the URL (argument or
``DATABASE_URL``); asking for a different URL afterwards is an error until
``dispose_engine()`` releases the binding (tests do this between cases).

Usage
-----
from ledger_db.client import create_tables, session_scope

create_tables()
with session_scope() as s:
    s.add(...)
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from .models.ledger import Base


@dataclass(slots=True)
class _Binding:
    url: str
    engine: Engine
    sessions: sessionmaker[Session]
    tables_ready: bool = False


_BINDING: _Binding | None = None


def _resolve_url(override: str | None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set and no database URL was given")
    return url


def _ensure_sqlite_parent(url: str) -> None:
    # SQLite creates the file but not missing parent directories.
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or not parsed.database:
        return
    if parsed.database == ":memory:":
        return
    Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _bind(database_url: str | None) -> _Binding:
    global _BINDING
    url = _resolve_url(database_url)
    if _BINDING is not None:
        if url != _BINDING.url:
            raise RuntimeError(
                f"ledger store already bound to {make_url(_BINDING.url)!r}; "
                "call dispose_engine() before switching databases"
            )
        return _BINDING

    _ensure_sqlite_parent(url)
    engine = create_engine(url, pool_pre_ping=True)
    _BINDING = _Binding(
        url=url,
        engine=engine,
        sessions=sessionmaker(bind=engine, expire_on_commit=False, class_=Session),
    )
    return _BINDING


def get_engine(*, database_url: str | None = None) -> Engine:
    """The process-wide engine, created on first use."""

    return _bind(database_url).engine


def dispose_engine() -> None:
    global _BINDING
    if _BINDING is not None:
        _BINDING.engine.dispose()
    _BINDING = None


def create_tables(*, database_url: str | None = None) -> None:
    """Create ``ledger_transactions`` if missing (once per binding)."""

    binding = _bind(database_url)
    if binding.tables_ready:
        return
    Base.metadata.create_all(bind=binding.engine)
    binding.tables_ready = True


def get_session(*, database_url: str | None = None) -> Session:
    return _bind(database_url).sessions()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on success, roll back on any exception, always close."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "create_tables",
    "dispose_engine",
    "get_engine",
    "get_session",
    "session_scope",
]
