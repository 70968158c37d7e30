"""Expense input validation and normalization.

Request bodies arrive as untyped JSON. The field rules live on
`ExpenseBodyIn`; `validate_expense_input` runs them all and collects every
violation in one pass, and nothing here raises. `normalize_expense_input`
turns a validated body into the typed, trimmed `CreateExpenseInput`, and
`parse_expense_input` chains the two for route handlers, raising
`FieldValidationError` with every message on failure.

The future-date ceiling is computed in UTC: a date is accepted while its UTC
midnight is not later than "now" (UTC) plus exactly one calendar year.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from ledger.core.errors import FieldValidationError, InputShapeError
from ledger.models import Category, CreateExpenseInput, ExpenseBodyIn
from ledger.services.money import round2

BODY_SHAPE_MESSAGE = "Request body must be a valid JSON object"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def validate_expense_input(
    raw: Any, now: Optional[datetime] = None
) -> ValidationResult:
    if not isinstance(raw, Mapping):
        return ValidationResult(valid=False, errors=[BODY_SHAPE_MESSAGE])
    try:
        ExpenseBodyIn.model_validate(dict(raw), context={"now": now})
    except ValidationError as exc:
        # one message per violated field, in field order
        return ValidationResult(valid=False, errors=[e["msg"] for e in exc.errors()])
    return ValidationResult(valid=True)


def parse_category(value: str) -> Optional[Category]:
    """Map a string onto the closed category set (None when not a member)."""
    try:
        return Category(value)
    except ValueError:
        return None


# Normalization -----------------------------------------------------


def normalize_expense_input(
    data: Union[Mapping[str, Any], CreateExpenseInput]
) -> CreateExpenseInput:
    """Build the canonical input from an already validated body.

    Amount is rounded half-up to 2 decimals; strings are stripped and an
    idempotency key that strips to nothing is dropped.
    """
    if isinstance(data, CreateExpenseInput):
        data = data.model_dump(mode="json")
    key = data.get("idempotency_key")
    if isinstance(key, str):
        key = key.strip() or None
    return CreateExpenseInput(
        amount=round2(data["amount"]),
        category=Category(data["category"].strip()),
        description=data["description"].strip(),
        date=data["date"].strip(),
        idempotency_key=key,
    )


def parse_expense_input(
    raw: Any, now: Optional[datetime] = None
) -> CreateExpenseInput:
    result = validate_expense_input(raw, now=now)
    if not result.valid:
        if result.errors == [BODY_SHAPE_MESSAGE]:
            raise InputShapeError(result.errors)
        raise FieldValidationError(result.errors)
    return normalize_expense_input(raw)
