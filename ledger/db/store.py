"""Expense store: the persistence handle behind the write coordinator and the
query engine.

Responsibilities
----------------
- Own the SQLite file: lazy, once-only schema initialization behind `init()`,
  and a `close()` that resets the handle.
- Atomic create-or-get keyed on the idempotency key, reported as a tagged
  `WriteOutcome` instead of a driver error code.
- Point lookups, partial update, delete, and the filtered / sorted /
  paginated listing.
- Monthly and category aggregation in minor units.

Every operation runs on its own short-lived connection; writes take the
database write lock up front (`BEGIN IMMEDIATE`) so concurrent writers queue
on SQLite's busy timeout instead of failing on a stale snapshot.
"""

from __future__ import annotations

import logging
import math
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from ledger.core.errors import DuplicateIdempotencyKeyError, StorageUnavailableError
from ledger.models import Category, Expense, PaginatedResult, SortOrder
from ledger.models.constants import MONTHLY_STATS_LIMIT

from .schema import init_db

logger = logging.getLogger("ledger.store")

UPDATABLE_COLUMNS = frozenset({"amount", "category", "description", "date"})
# LIMIT and OFFSET are bound as signed 64-bit integers
_SQLITE_MAX_INTEGER = 2**63 - 1

_INSERT_SQL = """
INSERT INTO expenses (id, amount, category, description, date, created_at, idempotency_key)
VALUES (:id, :amount, :category, :description, :date, :created_at, :idempotency_key)
"""
_INSERT_IF_KEY_ABSENT_SQL = (
    _INSERT_SQL
    + "ON CONFLICT(idempotency_key) WHERE idempotency_key IS NOT NULL DO NOTHING"
)
_SELECT_COLUMNS = "id, amount, category, description, date, created_at, idempotency_key"


@dataclass(frozen=True)
class Inserted:
    expense: Expense


@dataclass(frozen=True)
class AlreadyExists:
    expense: Expense


WriteOutcome = Union[Inserted, AlreadyExists]


class ExpenseStore:
    def __init__(self, db_path: Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._init_lock = threading.Lock()
        self._ready = False

    # ------------------------------------------------------------------
    # Lifecycle
    def init(self) -> None:
        """Initialize the database once; concurrent callers wait for the first."""
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            try:
                init_db(self.db_path, timeout=self.timeout)
            except sqlite3.Error as e:
                raise StorageUnavailableError() from e
            self._ready = True
            logger.info("expense store ready at %s", self.db_path)

    def close(self) -> None:
        with self._init_lock:
            self._ready = False
        logger.info("expense store closed")

    @property
    def ready(self) -> bool:
        return self._ready

    # ------------------------------------------------------------------
    # Connection helpers
    @contextmanager
    def _connect(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        self.init()
        try:
            # isolation_level=None: transactions are managed explicitly below
            conn = sqlite3.connect(
                self.db_path, timeout=self.timeout, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StorageUnavailableError() from e
        conn.row_factory = sqlite3.Row
        try:
            if write:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.execute("COMMIT")
        except sqlite3.IntegrityError:
            _rollback(conn)
            raise
        except sqlite3.Error as e:
            _rollback(conn)
            raise StorageUnavailableError() from e
        except BaseException:
            _rollback(conn)
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    def create_or_get(self, expense: Expense) -> WriteOutcome:
        """Insert `expense` unless a record with its idempotency key exists.

        Keyless expenses are always inserted. For keyed ones the insert and
        the read-back run in one write transaction, so the returned record is
        whichever row holds the key when the transaction commits.
        """
        params = _to_params(expense)
        key = expense.idempotency_key
        with self._connect(write=True) as conn:
            cur = conn.cursor()
            if key is None:
                cur.execute(_INSERT_SQL, params)
                return Inserted(expense)
            try:
                cur.execute(_INSERT_IF_KEY_ABSENT_SQL, params)
            except sqlite3.IntegrityError as e:
                if "idempotency_key" in str(e):
                    raise DuplicateIdempotencyKeyError(key) from e
                raise
            cur.execute(
                f"SELECT {_SELECT_COLUMNS} FROM expenses WHERE idempotency_key = ?",
                (key,),
            )
            row = cur.fetchone()
        if row is None:
            # the conflicting row vanished before the read-back
            raise DuplicateIdempotencyKeyError(key)
        stored = _row_to_expense(row)
        if stored.id == expense.id:
            return Inserted(stored)
        return AlreadyExists(stored)

    def update(self, expense_id: str, fields: Mapping[str, Any]) -> Optional[Expense]:
        """Replace the given fields and return the updated record (None if missing)."""
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported update fields: {sorted(unknown)}")
        if not fields:
            return self.find_by_id(expense_id)
        columns = sorted(fields)
        assignments = ", ".join(f"{col} = ?" for col in columns)
        params: List[Any] = [_column_value(fields[col]) for col in columns]
        params.append(expense_id)
        with self._connect(write=True) as conn:
            cur = conn.cursor()
            cur.execute(f"UPDATE expenses SET {assignments} WHERE id = ?", params)
            if cur.rowcount == 0:
                return None
            cur.execute(
                f"SELECT {_SELECT_COLUMNS} FROM expenses WHERE id = ?", (expense_id,)
            )
            row = cur.fetchone()
            return _row_to_expense(row) if row else None

    def delete(self, expense_id: str) -> bool:
        with self._connect(write=True) as conn:
            cur = conn.cursor()
            cur.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
            return cur.rowcount == 1

    def clear(self) -> None:
        with self._connect(write=True) as conn:
            conn.execute("DELETE FROM expenses")

    # ------------------------------------------------------------------
    # Lookups
    def find_by_id(self, expense_id: str) -> Optional[Expense]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {_SELECT_COLUMNS} FROM expenses WHERE id = ?", (expense_id,)
            )
            row = cur.fetchone()
            return _row_to_expense(row) if row else None

    def find_by_idempotency_key(self, key: str) -> Optional[Expense]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {_SELECT_COLUMNS} FROM expenses WHERE idempotency_key = ?",
                (key,),
            )
            row = cur.fetchone()
            return _row_to_expense(row) if row else None

    def list_expenses(
        self,
        category: Optional[Category] = None,
        sort: SortOrder = SortOrder.DATE_DESC,
        page: int = 1,
        limit: int = 0,
    ) -> PaginatedResult[Expense]:
        """List expenses ordered by date then creation time, one direction for both.

        `limit=0` returns every match as a single page.
        """
        direction = "ASC" if sort == SortOrder.DATE_ASC else "DESC"
        page = max(page, 1)
        limit = min(max(limit, 0), _SQLITE_MAX_INTEGER)
        offset = (page - 1) * limit
        clauses: List[str] = []
        params: List[Any] = []
        if category is not None:
            clauses.append("category = ?")
            params.append(_column_value(category))
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        sql = (
            f"SELECT {_SELECT_COLUMNS} FROM expenses{where} "
            f"ORDER BY date {direction}, created_at {direction}, seq {direction}"
        )
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT COUNT(*) FROM expenses{where}", params)
            total = int(cur.fetchone()[0])
            if offset > _SQLITE_MAX_INTEGER:
                data: List[Expense] = []
            else:
                if limit > 0:
                    sql += " LIMIT ? OFFSET ?"
                    params = params + [limit, offset]
                cur.execute(sql, params)
                data = [_row_to_expense(r) for r in cur.fetchall()]

        if limit > 0:
            return PaginatedResult[Expense](
                data=data,
                total=total,
                page=page,
                limit=limit,
                total_pages=math.ceil(total / limit),
            )
        return PaginatedResult[Expense](
            data=data, total=total, page=1, limit=total, total_pages=1
        )

    # ------------------------------------------------------------------
    # Aggregations (minor units)
    def monthly_totals(self, limit: int = MONTHLY_STATS_LIMIT) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT substr(date, 1, 7) AS month,
                       SUM(amount) AS total,
                       COUNT(*) AS count
                FROM expenses
                GROUP BY month
                ORDER BY month DESC
                LIMIT ?
                """,
                (limit,),
            )
            return [dict(r) for r in cur.fetchall()]

    def category_totals(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT category,
                       SUM(amount) AS total,
                       COUNT(*) AS count
                FROM expenses
                GROUP BY category
                ORDER BY total DESC, category ASC
                """
            )
            return [dict(r) for r in cur.fetchall()]

    def distinct_categories(self) -> List[str]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT DISTINCT category FROM expenses ORDER BY category")
            return [r[0] for r in cur.fetchall()]


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _to_params(expense: Expense) -> Dict[str, Any]:
    return {
        "id": expense.id,
        "amount": expense.amount,
        "category": _column_value(expense.category),
        "description": expense.description,
        "date": expense.date,
        "created_at": expense.created_at,
        "idempotency_key": expense.idempotency_key,
    }


def _row_to_expense(row: sqlite3.Row) -> Expense:
    return Expense(
        id=row["id"],
        amount=row["amount"],
        category=row["category"],
        description=row["description"],
        date=row["date"],
        created_at=row["created_at"],
        idempotency_key=row["idempotency_key"],
    )
