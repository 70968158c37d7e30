"""Read side: listings, lookups and aggregates, always in display units.

Inputs are checked before they reach the store: an unknown category is a
request error rather than an empty page, unknown sort values fall back to
newest first, and out-of-range page / limit values are clamped.
"""

from __future__ import annotations

from typing import List, Optional

from ledger.core.errors import InvalidCategoryError, NotFoundError
from ledger.db.store import ExpenseStore
from ledger.models import (
    CATEGORIES,
    CATEGORY_CHOICES_MESSAGE,
    CategoryTotal,
    Expense,
    ExpenseOut,
    MonthlyTotal,
    PaginatedResult,
    SortOrder,
    StatsOut,
)
from ledger.services.expense_validation import parse_category
from ledger.services.money import to_display_units


def to_expense_out(expense: Expense) -> ExpenseOut:
    return ExpenseOut(
        id=expense.id,
        amount=to_display_units(expense.amount),
        category=expense.category,
        description=expense.description,
        date=expense.date,
        created_at=expense.created_at,
    )


def coerce_sort(sort: Optional[str]) -> SortOrder:
    return SortOrder.DATE_ASC if sort == SortOrder.DATE_ASC.value else SortOrder.DATE_DESC


class QueryEngine:
    def __init__(self, store: ExpenseStore):
        self.store = store

    def list_expenses(
        self,
        category: Optional[str] = None,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> PaginatedResult[ExpenseOut]:
        parsed_category = None
        if category:
            parsed_category = parse_category(category)
            if parsed_category is None:
                raise InvalidCategoryError([CATEGORY_CHOICES_MESSAGE])

        result = self.store.list_expenses(
            category=parsed_category,
            sort=coerce_sort(sort),
            page=max(page or 1, 1),
            limit=max(limit or 0, 0),
        )
        return PaginatedResult[ExpenseOut](
            data=[to_expense_out(e) for e in result.data],
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        )

    def get_expense(self, expense_id: str) -> ExpenseOut:
        expense = self.store.find_by_id(expense_id)
        if expense is None:
            raise NotFoundError()
        return to_expense_out(expense)

    def stats(self) -> StatsOut:
        monthly = [
            MonthlyTotal(
                month=r["month"], total=to_display_units(r["total"]), count=r["count"]
            )
            for r in self.store.monthly_totals()
        ]
        categories = [
            CategoryTotal(
                category=r["category"],
                total=to_display_units(r["total"]),
                count=r["count"],
            )
            for r in self.store.category_totals()
        ]
        return StatsOut(monthly=monthly, categories=categories)

    def categories(self) -> List[str]:
        return list(CATEGORIES)

    def categories_in_use(self) -> List[str]:
        return self.store.distinct_categories()
