"""At-most-once expense creation keyed on the client's idempotency key.

Flow for a keyed request:
    1. Pre-check by key; a hit is returned as-is (saves a write, not a
       race guard).
    2. Build the candidate record (fresh id, minor units, UTC timestamp).
    3. Atomic create-or-get in the store; whichever row owns the key wins.
    4. If a uniqueness violation still escapes the store, re-read by key and
       hand back the winner.

Keyless requests skip steps 1 and 4 and always insert. No in-process lock
is involved: requests for the same key may come from separate processes.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ledger.core.errors import DuplicateIdempotencyKeyError
from ledger.db.store import AlreadyExists, ExpenseStore, Inserted
from ledger.models import CreateExpenseInput, Expense
from ledger.services.expense_validation import normalize_expense_input
from ledger.services.money import to_minor_units

logger = logging.getLogger("ledger.writes")


@dataclass(frozen=True)
class CreateResult:
    expense: Expense
    created: bool  # False when an earlier submission with the same key won


def utc_timestamp() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="microseconds")
        .replace("+00:00", "Z")
    )


class IdempotentWriteCoordinator:
    def __init__(
        self,
        store: ExpenseStore,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.store = store
        self._new_id = id_factory
        self._now = clock

    def create_expense(self, payload: CreateExpenseInput) -> CreateResult:
        payload = normalize_expense_input(payload)
        key = payload.idempotency_key

        if key:
            existing = self.store.find_by_idempotency_key(key)
            if existing is not None:
                logger.info("idempotent request detected: %s", key)
                return CreateResult(expense=existing, created=False)

        candidate = self._build_candidate(payload)
        try:
            outcome = self.store.create_or_get(candidate)
        except DuplicateIdempotencyKeyError:
            if not key:
                raise
            winner = self._recover_race(key)
            if winner is None:
                raise
            return CreateResult(expense=winner, created=False)

        if isinstance(outcome, AlreadyExists):
            logger.info("idempotency key %s claimed concurrently; returning winner", key)
            return CreateResult(expense=outcome.expense, created=False)
        if not isinstance(outcome, Inserted):
            raise TypeError(f"unexpected write outcome: {outcome!r}")
        logger.info("created expense: %s", outcome.expense.id)
        return CreateResult(expense=outcome.expense, created=True)

    def _build_candidate(self, payload: CreateExpenseInput) -> Expense:
        return Expense(
            id=self._new_id(),
            amount=to_minor_units(payload.amount),
            category=payload.category,
            description=payload.description,
            date=payload.date,
            created_at=self._now(),
            idempotency_key=payload.idempotency_key,
        )

    def _recover_race(self, key: str) -> Optional[Expense]:
        winner = self.store.find_by_idempotency_key(key)
        if winner is not None:
            logger.info("recovered idempotency race for key %s", key)
        else:
            logger.warning("duplicate key %s reported but no record found", key)
        return winner
