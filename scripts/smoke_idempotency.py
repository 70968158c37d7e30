"""Smoke script for idempotent expense creation.

Demonstrates:
 1. Twelve concurrent submissions sharing one idempotency key collapse to a single record.
 2. Keyless submissions each create their own record.
 3. Stats reflect exactly what was stored.

NOTE: This is a lightweight diagnostic and not a formal test. Runs against a
throwaway database in a temp directory.
"""

import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from pprint import pprint

from ledger.db.store import ExpenseStore
from ledger.services.expense_validation import parse_expense_input
from ledger.services.idempotent_writes import IdempotentWriteCoordinator
from ledger.services.query_engine import QueryEngine


def run():
    tmp = Path(tempfile.mkdtemp(prefix="ledger_smoke_"))
    store = ExpenseStore(tmp / "smoke.sqlite3")
    writer = IdempotentWriteCoordinator(store)
    engine = QueryEngine(store)

    body = {
        "amount": 499.99,
        "category": "Shopping",
        "description": "Headphones",
        "date": "2024-04-02",
        "idempotency_key": "checkout-42",
    }
    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(
            pool.map(
                lambda _: writer.create_expense(parse_expense_input(body)), range(12)
            )
        )

    keyless = dict(body, idempotency_key=None)
    for _ in range(3):
        writer.create_expense(parse_expense_input(keyless))

    out = {
        "keyed_ids": sorted({r.expense.id for r in results}),
        "keyed_created_flags": sum(r.created for r in results),
        "total_records": engine.list_expenses().total,
        "stats": engine.stats().model_dump(mode="json"),
    }
    pprint(out)
    store.close()

    assert len(out["keyed_ids"]) == 1, "duplicate keyed records"
    assert out["keyed_created_flags"] == 1
    assert out["total_records"] == 4
    print("Idempotency smoke test: PASS")


if __name__ == "__main__":
    run()
