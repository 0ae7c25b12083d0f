"""
FastAPI main application for the Library Management API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient

from api.config import config
from api.crud_stats import CrudStatsService
from api.database import APIDatabaseService
from api.errors import LibraryError
from api.middleware import CrudCounterMiddleware, RequestLoggingMiddleware
from api.models import ErrorResponse, HealthResponse
from api.routes import authors, books, carts, crud_stats, users
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger.info("Starting Library Management API")

    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        database = client[config.mongodb_database]
        await database.command("ping")
        logger.info("Database connection established", database=config.mongodb_database)

        db_service = APIDatabaseService(database, loan_period_days=config.loan_period_days)
        await db_service.ensure_indexes()

        stats_service = CrudStatsService(
            database[config.stats_collection], document_name=config.stats_document_name
        )
        await stats_service.ensure_indexes()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    app.state.db_service = db_service
    app.state.crud_stats = stats_service

    yield

    logger.info("Shutting down Library Management API")
    client.close()


app = FastAPI(
    title=config.api_title,
    description="""
    REST API for a library: authors, books and their physical copies,
    borrowing and returning, users and shopping carts.

    ## CRUD statistics

    Every API request is counted by operation kind (create, read, update,
    delete) together with whether it succeeded. The counters are available
    under `/api/v1/crud-stats`.

    ## Authentication

    When API keys are configured, include one in the Authorization header:

    ```
    Authorization: Bearer your_api_key_here
    ```
    """,
    version=config.api_version,
    lifespan=lifespan
)

# Middleware added last runs first: request logging wraps the counter
app.add_middleware(CrudCounterMiddleware, excluded_paths=config.stats_excluded_paths)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)

for module in (authors, books, users, carts, crud_stats):
    app.include_router(module.router, prefix=config.api_prefix)


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            status_code=exc.status_code
        ).model_dump(),
        headers=exc.headers
    )


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    """Map domain errors from the service layer to their status codes."""
    logger.info("Request rejected", path=request.url.path, error=exc.message, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            status_code=exc.status_code
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump()
    )


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    db_status = "unavailable"
    db_service = getattr(request.app.state, "db_service", None)
    if db_service:
        health_info = await db_service.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=config.api_version,
        database_status=db_status
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
