"""
CRUD statistics endpoints.

Read-only: the counters only change as a side effect of other API traffic.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from api.auth import verify_api_key
from api.crud_stats import CrudStatsService
from api.deps import get_crud_stats_service
from api.models import CrudKind, CrudStats, OperationCounter


router = APIRouter(prefix="/crud-stats", tags=["Statistics"], dependencies=[Depends(verify_api_key)])


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Statistics are temporarily unavailable"
    )


@router.get("", response_model=CrudStats)
async def get_crud_stats(stats_service: CrudStatsService = Depends(get_crud_stats_service)):
    """Get attempt and success counters for every operation kind."""
    stats = await stats_service.get_all()
    if stats is None:
        raise _unavailable()
    return stats


@router.get("/{kind}", response_model=OperationCounter)
async def get_crud_stats_for_kind(
    kind: CrudKind,
    stats_service: CrudStatsService = Depends(get_crud_stats_service)
):
    """
    Get the counters for one operation kind.

    - **kind**: create, read, update or delete
    """
    counter = await stats_service.get_one(kind)
    if counter is None:
        raise _unavailable()
    return counter
