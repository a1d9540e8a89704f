"""DB helpers for tests: a throwaway SQLite ledger store per test."""

from __future__ import annotations

from pathlib import Path

from ledger_db import LedgerTransaction
from ledger_db.client import create_tables, session_scope
from sqlalchemy import text as sql_text


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create the ledger tables in ``db_file`` and return its URL.

    File-backed rather than ``:memory:`` so every pooled connection sees the
    same tables.
    """

    url = f"sqlite+pysqlite:///{db_file}"
    create_tables(database_url=url)
    _check_columns_match_model(url)
    return url


def _check_columns_match_model(database_url: str) -> None:
    want = {c.name for c in LedgerTransaction.__table__.columns}
    with session_scope(database_url=database_url) as session:
        info = session.execute(sql_text("PRAGMA table_info('ledger_transactions')"))
        have = {row[1] for row in info}  # (cid, name, type, notnull, dflt_value, pk)
    assert have == want, f"ledger_transactions drift: missing={want - have} extra={have - want}"
