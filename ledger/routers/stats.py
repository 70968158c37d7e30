from fastapi import APIRouter, Depends, Request

from ledger.models import StatsOut
from ledger.services.query_engine import QueryEngine

router = APIRouter(prefix="/stats", tags=["stats"])


def get_query_engine(request: Request) -> QueryEngine:
    return QueryEngine(request.app.state.store)


@router.get(
    "",
    response_model=StatsOut,
    summary="Monthly totals (latest 12 months) and per-category totals",
)
def stats_endpoint(engine: QueryEngine = Depends(get_query_engine)):
    """Both lists carry display-unit totals.

    - monthly: grouped by YYYY-MM, newest month first.
    - categories: grouped by category, largest total first.
    """
    return engine.stats()
