"""
HTTP middleware: request logging and CRUD statistics counting.
"""

import time
import uuid
from typing import Callable, Dict, Iterable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from api.models import CrudKind
from utilities.logger import RequestLogger

logger = structlog.get_logger(__name__)

METHOD_KINDS: Dict[str, CrudKind] = {
    "GET": CrudKind.READ,
    "POST": CrudKind.CREATE,
    "PUT": CrudKind.UPDATE,
    "PATCH": CrudKind.UPDATE,
    "DELETE": CrudKind.DELETE,
}


def classify_method(method: str) -> Optional[CrudKind]:
    """Map an HTTP method to its CRUD kind, None for methods that are not counted."""
    return METHOD_KINDS.get(method.upper())


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one event per request with its status and duration.

    The request id is bound to structlog's context variables for the whole
    request, so every event logged while handling it carries the id.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self.request_logger = RequestLogger()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                self.request_logger.log_request_failed(
                    request.method, request.url.path, str(e), (time.perf_counter() - started) * 1000
                )
                raise

            self.request_logger.log_request_complete(
                request.method, request.url.path, response.status_code, (time.perf_counter() - started) * 1000
            )
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response


class CrudCounterMiddleware(BaseHTTPMiddleware):
    """
    Counts every finished request in the CRUD statistics document.

    The statistics service is looked up on ``app.state.crud_stats`` at request
    time. Failures while counting are logged and never change the response.
    """

    def __init__(self, app: ASGIApp, excluded_paths: Iterable[str] = ()) -> None:
        super().__init__(app)
        self.excluded_paths = set(excluded_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        kind = classify_method(request.method)
        if kind is None or request.url.path in self.excluded_paths:
            return await call_next(request)

        try:
            response = await call_next(request)
        except Exception:
            await self._record(request, kind, False)
            raise

        await self._record(request, kind, is_success(response.status_code))
        return response

    async def _record(self, request: Request, kind: CrudKind, success: bool) -> None:
        stats_service = getattr(request.app.state, "crud_stats", None)
        if stats_service is None:
            logger.debug("CRUD stats service not configured, skipping count", path=request.url.path)
            return

        try:
            result = await stats_service.increment(kind, success)
        except Exception as e:
            logger.error("CRUD stats increment raised", kind=kind.value, path=request.url.path, error=str(e))
            return

        if result is None:
            logger.warning("CRUD stats not updated", kind=kind.value, path=request.url.path)
