"""Database schema DDL definitions and initialization utilities.

Tables:
  - expenses: individual expense records, amounts in integer minor units

The idempotency key carries a partial (sparse) unique index: rows without a
key never take part in the uniqueness check.
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

EXPENSES_DDL = """
CREATE TABLE IF NOT EXISTS expenses (
    seq INTEGER PRIMARY KEY AUTOINCREMENT, -- insertion order tie-break, internal only
    id TEXT NOT NULL UNIQUE,
    amount INTEGER NOT NULL CHECK (amount > 0), -- minor units
    category TEXT NOT NULL,
    description TEXT NOT NULL,
    date TEXT NOT NULL, -- ISO date (YYYY-MM-DD)
    created_at TEXT NOT NULL, -- ISO timestamp (UTC)
    idempotency_key TEXT
);
"""

EXPENSES_IDEMPOTENCY_INDEX_DDL = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_expenses_idempotency_key
ON expenses(idempotency_key)
WHERE idempotency_key IS NOT NULL;
"""
EXPENSES_CATEGORY_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_expenses_category ON expenses(category);"
)
EXPENSES_DATE_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_expenses_date_created "
    "ON expenses(date DESC, created_at DESC);"
)

DDL_ORDER: Sequence[str] = (
    EXPENSES_DDL,
    EXPENSES_IDEMPOTENCY_INDEX_DDL,
    EXPENSES_CATEGORY_INDEX_DDL,
    EXPENSES_DATE_INDEX_DDL,
)


def init_db(path: Path, timeout: float = 5.0) -> None:
    """Create all tables and indexes idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    timeout: Seconds to wait on a locked database.
    """
    conn = sqlite3.connect(path, timeout=timeout)
    try:
        # WAL lets readers proceed while a writer holds the lock
        conn.execute("PRAGMA journal_mode=WAL")
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
