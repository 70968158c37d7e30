"""
Tests for the SQLite-backed expense store.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from ledger.core.errors import StorageUnavailableError
from ledger.db import store as store_module
from ledger.db.store import AlreadyExists, ExpenseStore, Inserted
from ledger.models import Category, SortOrder


def seed(store, make_expense, count, **overrides):
    created = []
    for _ in range(count):
        expense = make_expense(**overrides)
        store.create_or_get(expense)
        created.append(expense)
    return created


class TestCreateOrGet:
    def test_keyless_always_inserts(self, store, make_expense):
        first = store.create_or_get(make_expense())
        second = store.create_or_get(make_expense())
        assert isinstance(first, Inserted)
        assert isinstance(second, Inserted)
        assert store.list_expenses().total == 2

    def test_same_key_returns_existing(self, store, make_expense):
        original = make_expense(idempotency_key="K1", amount=500)
        assert isinstance(store.create_or_get(original), Inserted)

        outcome = store.create_or_get(make_expense(idempotency_key="K1", amount=999))
        assert isinstance(outcome, AlreadyExists)
        assert outcome.expense == original
        assert store.list_expenses().total == 1

    def test_distinct_keys_are_independent(self, store, make_expense):
        store.create_or_get(make_expense(idempotency_key="A"))
        store.create_or_get(make_expense(idempotency_key="B"))
        assert store.list_expenses().total == 2

    def test_record_round_trips_losslessly(self, store, make_expense):
        expense = make_expense(
            amount=123456, category="Bills", date="2024-02-29", idempotency_key="rt"
        )
        store.create_or_get(expense)
        assert store.find_by_id(expense.id) == expense
        assert store.find_by_idempotency_key("rt") == expense


class TestLookupsAndWrites:
    def test_missing_lookups(self, store):
        assert store.find_by_id("nope") is None
        assert store.find_by_idempotency_key("nope") is None

    def test_update_replaces_given_fields(self, store, make_expense):
        expense = make_expense(idempotency_key="keep-me")
        store.create_or_get(expense)

        updated = store.update(
            expense.id, {"amount": 4200, "category": Category.TRANSPORT}
        )
        assert updated is not None
        assert updated.amount == 4200
        assert updated.category is Category.TRANSPORT
        assert updated.description == expense.description
        assert updated.created_at == expense.created_at
        assert updated.idempotency_key == "keep-me"
        assert store.find_by_id(expense.id) == updated

    def test_update_missing_returns_none(self, store):
        assert store.update("nope", {"amount": 1}) is None

    def test_update_rejects_unknown_fields(self, store, make_expense):
        expense = make_expense()
        store.create_or_get(expense)
        with pytest.raises(ValueError):
            store.update(expense.id, {"created_at": "2020-01-01T00:00:00Z"})

    def test_delete(self, store, make_expense):
        expense = make_expense()
        store.create_or_get(expense)
        assert store.delete(expense.id) is True
        assert store.delete(expense.id) is False
        assert store.find_by_id(expense.id) is None

    def test_clear(self, store, make_expense):
        seed(store, make_expense, 3)
        store.clear()
        assert store.list_expenses().total == 0


class TestListing:
    def test_category_filter(self, store, make_expense):
        seed(store, make_expense, 3, category="Food")
        seed(store, make_expense, 2, category="Bills")
        result = store.list_expenses(category=Category.FOOD)
        assert result.total == 3
        assert {e.category for e in result.data} == {Category.FOOD}

    def test_sort_ascending_breaks_date_ties_by_created_at(self, store, make_expense):
        late = make_expense(date="2024-03-02", created_at="2024-03-02T09:00:00.000000Z")
        tie_second = make_expense(date="2024-03-01", created_at="2024-03-01T12:00:00.000000Z")
        tie_first = make_expense(date="2024-03-01", created_at="2024-03-01T08:00:00.000000Z")
        early = make_expense(date="2024-02-10", created_at="2024-03-05T00:00:00.000000Z")
        for e in (late, tie_second, tie_first, early):
            store.create_or_get(e)

        asc = store.list_expenses(sort=SortOrder.DATE_ASC).data
        assert [e.id for e in asc] == [early.id, tie_first.id, tie_second.id, late.id]

        desc = store.list_expenses(sort=SortOrder.DATE_DESC).data
        assert [e.id for e in desc] == [e.id for e in reversed(asc)]

    def test_default_sort_is_newest_first(self, store, make_expense):
        old = make_expense(date="2023-01-01")
        new = make_expense(date="2024-01-01")
        store.create_or_get(old)
        store.create_or_get(new)
        assert [e.id for e in store.list_expenses().data] == [new.id, old.id]

    def test_pagination_second_page(self, store, make_expense):
        records = [
            make_expense(date=f"2024-01-{day:02d}") for day in range(1, 26)
        ]
        for e in records:
            store.create_or_get(e)

        result = store.list_expenses(sort=SortOrder.DATE_ASC, page=2, limit=10)
        assert [e.id for e in result.data] == [e.id for e in records[10:20]]
        assert result.total == 25
        assert result.page == 2
        assert result.limit == 10
        assert result.total_pages == 3

        last = store.list_expenses(sort=SortOrder.DATE_ASC, page=3, limit=10)
        assert len(last.data) == 5

    def test_limit_zero_returns_everything(self, store, make_expense):
        seed(store, make_expense, 25)
        result = store.list_expenses(limit=0, page=4)
        assert len(result.data) == 25
        assert result.page == 1
        assert result.limit == 25
        assert result.total_pages == 1

    def test_page_past_integer_range_is_empty(self, store, make_expense):
        seed(store, make_expense, 3)
        result = store.list_expenses(page=10**19, limit=10)
        assert result.data == []
        assert result.total == 3
        assert result.page == 10**19
        assert result.total_pages == 1

    def test_limit_past_integer_range_is_capped(self, store, make_expense):
        seed(store, make_expense, 3)
        result = store.list_expenses(limit=10**30)
        assert len(result.data) == 3
        assert result.limit == 2**63 - 1
        assert result.total_pages == 1

    def test_result_is_immutable(self, store, make_expense):
        seed(store, make_expense, 1)
        result = store.list_expenses()
        with pytest.raises(Exception):
            result.total = 99


class TestAggregations:
    def test_monthly_totals_newest_first(self, store, make_expense):
        store.create_or_get(make_expense(date="2024-01-10", amount=1000))
        store.create_or_get(make_expense(date="2024-01-20", amount=2550))
        store.create_or_get(make_expense(date="2024-02-05", amount=700))

        assert store.monthly_totals() == [
            {"month": "2024-02", "total": 700, "count": 1},
            {"month": "2024-01", "total": 3550, "count": 2},
        ]

    def test_monthly_totals_capped_at_twelve(self, store, make_expense):
        for month in range(1, 13):
            store.create_or_get(make_expense(date=f"2023-{month:02d}-01"))
        store.create_or_get(make_expense(date="2024-01-01"))
        store.create_or_get(make_expense(date="2024-02-01"))

        months = [r["month"] for r in store.monthly_totals()]
        assert len(months) == 12
        assert months[0] == "2024-02"
        assert months[-1] == "2023-03"

    def test_category_totals_ordered_by_sum(self, store, make_expense):
        store.create_or_get(make_expense(category="Bills", amount=100))
        store.create_or_get(make_expense(category="Transport", amount=5000))
        store.create_or_get(make_expense(category="Food", amount=300))
        store.create_or_get(make_expense(category="Food", amount=400))

        assert store.category_totals() == [
            {"category": "Transport", "total": 5000, "count": 1},
            {"category": "Food", "total": 700, "count": 2},
            {"category": "Bills", "total": 100, "count": 1},
        ]

    def test_distinct_categories_sorted(self, store, make_expense):
        for category in ("Shopping", "Bills", "Food", "Bills"):
            store.create_or_get(make_expense(category=category))
        assert store.distinct_categories() == ["Bills", "Food", "Shopping"]


class TestLifecycle:
    def test_concurrent_init_runs_once(self, settings, monkeypatch):
        calls = []
        real_init_db = store_module.init_db

        def slow_init_db(path, timeout=5.0):
            calls.append(threading.get_ident())
            time.sleep(0.05)
            real_init_db(path, timeout=timeout)

        monkeypatch.setattr(store_module, "init_db", slow_init_db)
        handle = ExpenseStore(settings.db_path)
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: handle.init(), range(16)))

        assert len(calls) == 1
        assert handle.ready

    def test_lazy_init_on_first_operation(self, settings):
        handle = ExpenseStore(settings.db_path)
        assert not handle.ready
        assert handle.find_by_id("x") is None
        assert handle.ready

    def test_close_resets_handle(self, store):
        store.close()
        assert not store.ready
        store.init()
        assert store.ready

    def test_unreachable_database(self, tmp_path):
        # a directory cannot be opened as a database file
        handle = ExpenseStore(tmp_path)
        with pytest.raises(StorageUnavailableError):
            handle.init()
