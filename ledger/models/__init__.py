"""Pydantic domain models for the expense ledger."""

from .constants import (
    CATEGORIES,
    CATEGORY_CHOICES_MESSAGE,
    MAX_AMOUNT,
    Category,
    SortOrder,
)  # re-export
from .expense import (
    CategoryTotal,
    CreateExpenseInput,
    Expense,
    ExpenseBodyIn,
    ExpenseOut,
    MonthlyTotal,
    PaginatedResult,
    StatsOut,
)

__all__ = [
    "CATEGORIES",
    "CATEGORY_CHOICES_MESSAGE",
    "MAX_AMOUNT",
    "Category",
    "SortOrder",
    "CategoryTotal",
    "CreateExpenseInput",
    "Expense",
    "ExpenseBodyIn",
    "ExpenseOut",
    "MonthlyTotal",
    "PaginatedResult",
    "StatsOut",
]
