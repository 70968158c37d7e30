from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from .constants import (
    CATEGORY_CHOICES_MESSAGE,
    MAX_AMOUNT,
    MAX_DESCRIPTION_LENGTH,
    MAX_IDEMPOTENCY_KEY_LENGTH,
    Category,
)

_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)


def _invalid(field: str, message: str) -> PydanticCustomError:
    return PydanticCustomError(f"{field}_invalid", message)


class ExpenseBodyIn(BaseModel):
    """Untrusted create/update body, checked field by field.

    Fields stay untyped so that every rule can report its own message; each
    validator raises at most one error and pydantic collects them all in
    field order. The future-date rule reads "now" from the validation
    context (UTC) and falls back to the current time.
    """

    model_config = ConfigDict(extra="ignore", validate_default=True)

    amount: Any = None
    category: Any = None
    description: Any = None
    date: Any = None
    idempotency_key: Any = None

    @field_validator("amount", mode="before")
    @classmethod
    def valid_amount(cls, v: Any) -> Any:
        if v is None:
            raise _invalid("amount", "Amount is required")
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise _invalid("amount", "Amount must be a valid number")
        if isinstance(v, float) and not math.isfinite(v):
            raise _invalid("amount", "Amount must be a valid number")
        if v <= 0:
            raise _invalid("amount", "Amount must be greater than 0")
        if v > MAX_AMOUNT:
            raise _invalid("amount", "Amount exceeds maximum allowed value")
        if _decimal_places(v) > 2:
            raise _invalid("amount", "Amount can have at most 2 decimal places")
        return v

    @field_validator("category", mode="before")
    @classmethod
    def valid_category(cls, v: Any) -> Any:
        if not v:
            raise _invalid("category", "Category is required")
        if not isinstance(v, str):
            raise _invalid("category", "Category must be a string")
        try:
            Category(v.strip())
        except ValueError:
            raise _invalid("category", CATEGORY_CHOICES_MESSAGE) from None
        return v

    @field_validator("description", mode="before")
    @classmethod
    def valid_description(cls, v: Any) -> Any:
        if not v:
            raise _invalid("description", "Description is required")
        if not isinstance(v, str):
            raise _invalid("description", "Description must be a string")
        if not v.strip():
            raise _invalid("description", "Description cannot be empty")
        if len(v) > MAX_DESCRIPTION_LENGTH:
            raise _invalid(
                "description",
                f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less",
            )
        return v

    @field_validator("date", mode="before")
    @classmethod
    def valid_date(cls, v: Any, info: ValidationInfo) -> Any:
        if not v:
            raise _invalid("date", "Date is required")
        if not isinstance(v, str):
            raise _invalid("date", "Date must be a string")
        if not _DATE_PATTERN.fullmatch(v):
            raise _invalid("date", "Date must be in YYYY-MM-DD format")
        try:
            parsed = date.fromisoformat(v)
        except ValueError:
            raise _invalid("date", "Date is not a valid date") from None
        now = (info.context or {}).get("now") or datetime.now(timezone.utc)
        midnight = datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
        if midnight > _one_year_after(now):
            raise _invalid("date", "Date cannot be more than 1 year in the future")
        return v

    @field_validator("idempotency_key", mode="before")
    @classmethod
    def valid_idempotency_key(cls, v: Any) -> Any:
        if v is None:
            return v
        if not isinstance(v, str):
            raise _invalid("idempotency_key", "Idempotency key must be a string")
        if len(v) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise _invalid(
                "idempotency_key",
                f"Idempotency key must be {MAX_IDEMPOTENCY_KEY_LENGTH} characters or less",
            )
        return v


def _decimal_places(v: Any) -> int:
    # shortest repr, so 0.1 counts one place and 1e-05 counts five
    exponent = Decimal(repr(v) if isinstance(v, float) else v).as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def _one_year_after(now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    try:
        return now.replace(year=now.year + 1)
    except ValueError:  # 29 Feb
        return now.replace(year=now.year + 1, day=28)


class CreateExpenseInput(BaseModel):
    """Typed expense input, only ever built from validated request data.

    `amount` is in major (display) units.
    """

    model_config = ConfigDict(frozen=True)

    amount: float
    category: Category
    description: str
    date: str  # YYYY-MM-DD
    idempotency_key: Optional[str] = None


class Expense(BaseModel):
    """Stored expense record; `amount` is an integer count of minor units."""

    model_config = ConfigDict(frozen=True)

    id: str
    amount: int
    category: Category
    description: str
    date: str
    created_at: str
    idempotency_key: Optional[str] = None


class ExpenseOut(BaseModel):
    id: str
    amount: float
    category: Category
    description: str
    date: str
    created_at: str


T = TypeVar("T")


class PaginatedResult(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")


class MonthlyTotal(BaseModel):
    month: str  # YYYY-MM
    total: float
    count: int


class CategoryTotal(BaseModel):
    category: Category
    total: float
    count: int


class StatsOut(BaseModel):
    monthly: List[MonthlyTotal]
    categories: List[CategoryTotal]
