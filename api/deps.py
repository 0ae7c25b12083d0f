"""
FastAPI dependencies that hand out the services created at startup.
"""

from fastapi import HTTPException, Request, status

from api.crud_stats import CrudStatsService
from api.database import APIDatabaseService


def get_db_service(request: Request) -> APIDatabaseService:
    db_service = getattr(request.app.state, "db_service", None)
    if db_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service not available"
        )
    return db_service


def get_crud_stats_service(request: Request) -> CrudStatsService:
    stats_service = getattr(request.app.state, "crud_stats", None)
    if stats_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Statistics service not available"
        )
    return stats_service
