from typing import List

from fastapi import APIRouter, Depends, Request

from ledger.services.query_engine import QueryEngine

router = APIRouter(prefix="/categories", tags=["categories"])


def get_query_engine(request: Request) -> QueryEngine:
    return QueryEngine(request.app.state.store)


@router.get("", response_model=List[str], summary="List valid categories")
def list_categories(engine: QueryEngine = Depends(get_query_engine)):
    return engine.categories()


@router.get(
    "/in-use",
    response_model=List[str],
    summary="Categories that currently have expenses, alphabetical",
)
def list_categories_in_use(engine: QueryEngine = Depends(get_query_engine)):
    return engine.categories_in_use()
