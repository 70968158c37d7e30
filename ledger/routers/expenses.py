import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from starlette import status

from ledger.core.errors import NotFoundError
from ledger.db.store import ExpenseStore
from ledger.models import ExpenseOut, PaginatedResult
from ledger.services.expense_validation import parse_expense_input
from ledger.services.idempotent_writes import IdempotentWriteCoordinator
from ledger.services.money import to_minor_units
from ledger.services.query_engine import QueryEngine, to_expense_out

router = APIRouter(prefix="/expenses", tags=["expenses"])
logger = logging.getLogger("ledger.expenses")

# Dependencies -----------------------------------------------------


def get_store(request: Request) -> ExpenseStore:
    return request.app.state.store


def get_writer(store: ExpenseStore = Depends(get_store)) -> IdempotentWriteCoordinator:
    return IdempotentWriteCoordinator(store)


def get_query_engine(store: ExpenseStore = Depends(get_store)) -> QueryEngine:
    return QueryEngine(store)


# Body ------------------------------------------------------------


async def read_json_body(request: Request) -> Any:
    """Return the decoded body, or None when it is empty or not JSON.

    The only awaiting step of a request; route handlers stay plain functions.
    """
    body = await request.body()
    if not body:
        return None
    try:
        return await request.json()
    except ValueError:
        return None


# Routes -----------------------------------------------------------
@router.post(
    "",
    response_model=ExpenseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an expense (idempotent when idempotency_key is sent)",
)
def create_expense(
    response: Response,
    raw: Any = Depends(read_json_body),
    writer: IdempotentWriteCoordinator = Depends(get_writer),
):
    # 1. Validate + normalize the untyped body
    payload = parse_expense_input(raw)

    # 2. Create or replay
    result = writer.create_expense(payload)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return to_expense_out(result.expense)


@router.get(
    "",
    response_model=PaginatedResult[ExpenseOut],
    summary="List expenses with optional category filter, sorting and pagination",
)
def list_expenses_endpoint(
    category: Optional[str] = Query(None, description="Filter by category"),
    sort: Optional[str] = Query(
        None, description="date_desc (default) or date_asc; anything else means date_desc"
    ),
    page: Optional[int] = Query(None, description="1-based page number"),
    limit: Optional[int] = Query(
        None, description="Page size; 0 or omitted returns everything"
    ),
    engine: QueryEngine = Depends(get_query_engine),
):
    return engine.list_expenses(
        category=category,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get("/{expense_id}", response_model=ExpenseOut, summary="Get one expense")
def get_expense(
    expense_id: str,
    engine: QueryEngine = Depends(get_query_engine),
):
    return engine.get_expense(expense_id)


@router.put("/{expense_id}", response_model=ExpenseOut, summary="Replace an expense")
def update_expense(
    expense_id: str,
    raw: Any = Depends(read_json_body),
    store: ExpenseStore = Depends(get_store),
):
    # 1. Existence first so a missing id wins over a bad body
    if store.find_by_id(expense_id) is None:
        raise NotFoundError()

    # 2. Same rules as create
    payload = parse_expense_input(raw)

    # 3. Persist
    updated = store.update(
        expense_id,
        {
            "amount": to_minor_units(payload.amount),
            "category": payload.category,
            "description": payload.description,
            "date": payload.date,
        },
    )
    if updated is None:
        raise NotFoundError()
    logger.info("updated expense: %s", expense_id)
    return to_expense_out(updated)


@router.delete(
    "/{expense_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an expense",
)
def delete_expense(
    expense_id: str,
    store: ExpenseStore = Depends(get_store),
):
    if not store.delete(expense_id):
        raise NotFoundError()
    logger.info("deleted expense: %s", expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
