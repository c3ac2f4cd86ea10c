from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from errorlog.api.context import snapshot_request
from errorlog.api.router import api_router
from errorlog.core.errors import (
    APIError,
    InvalidInputError,
    PersistenceError,
    make_error_payload,
)
from errorlog.core.settings import get_settings
from errorlog.db.session import get_sessionmaker
from errorlog.services.capture import SYSTEM_WIDE_GALLERY_ID, add_exception_data
from errorlog.services.error_service import ErrorService
from errorlog.tasks.notify import enqueue_notification


logger = logging.getLogger(__name__)

GALLERY_ID_HEADER = "X-Gallery-Id"


def _gallery_id_for(request: Request) -> int:
    """Tenant of the failing request; system-wide when it cannot be told."""

    gallery_id = getattr(request.state, "gallery_id", None)
    if isinstance(gallery_id, int):
        return gallery_id
    raw = request.headers.get(GALLERY_ID_HEADER)
    if raw:
        try:
            return int(raw)
        except ValueError:
            pass
    return SYSTEM_WIDE_GALLERY_ID


async def record_unhandled_exception(request: Request, exc: Exception) -> int | None:
    """Write `exc` to the error log and queue its notification."""

    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        add_exception_data(exc, "Trace Id", trace_id)

    try:
        context = await snapshot_request(request)
    except Exception:
        logger.exception("Failed to snapshot request for error log")
        context = None

    sessionmaker = get_sessionmaker()
    async with sessionmaker() as session:
        error_id = await ErrorService(session).handle_exception(
            exc,
            gallery_id=_gallery_id_for(request),
            context=context,
            notify=False,
        )
    if error_id is not None:
        enqueue_notification(error_id)
    return error_id


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title="Gallery Error Log API")

    def _with_trace_id_header(
        headers: dict[str, str] | None, trace_id: str | None
    ) -> dict[str, str] | None:
        """Return headers merged with X-Trace-Id when trace_id is present."""

        if not trace_id:
            return headers
        merged: dict[str, str] = dict(headers or {})
        merged["X-Trace-Id"] = trace_id
        return merged

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_allow_origin],
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["Content-Type", "X-Admin-Key", GALLERY_ID_HEADER],
    )

    @app.middleware("http")
    async def _trace_id_middleware(request, call_next):
        trace_id = request.headers.get("X-Trace-Id") or str(uuid.uuid4())
        request.state.trace_id = trace_id
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.exception_handler(APIError)
    async def _api_error_handler(request, exc: APIError):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request, exc: RequestValidationError):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=422,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                trace_id=trace_id,
                details=exc.errors(),
            ),
        )

    @app.exception_handler(InvalidInputError)
    async def _invalid_input_handler(request, exc: InvalidInputError):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=400,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="INVALID_INPUT",
                message=str(exc),
                trace_id=trace_id,
                details=None,
            ),
        )

    @app.exception_handler(PersistenceError)
    async def _persistence_error_handler(request, exc: PersistenceError):
        # The store is unusable, so this one is not written to the error log.
        trace_id = getattr(request.state, "trace_id", None)
        logger.error(
            "Error log storage failure (trace_id=%s)",
            trace_id,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return JSONResponse(
            status_code=503,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="STORAGE_UNAVAILABLE",
                message="Error log storage unavailable",
                trace_id=trace_id,
                details=None,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request, exc: StarletteHTTPException):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="HTTP_ERROR",
                message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
                trace_id=trace_id,
                details=None,
            ),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", None)
        method = getattr(request, "method", None)
        path = getattr(getattr(request, "url", None), "path", None)

        headers = None
        if isinstance(method, str) and isinstance(path, str) and method and path:
            headers = {"X-Error-Path": f"{method} {path}"}
        headers = _with_trace_id_header(headers, trace_id)
        logger.error(
            "Unhandled exception (trace_id=%s method=%s path=%s)",
            trace_id,
            method,
            path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )

        error_id = await record_unhandled_exception(request, exc)
        return JSONResponse(
            status_code=500,
            headers=headers,
            content=make_error_payload(
                code="INTERNAL_ERROR",
                message="Internal error",
                trace_id=trace_id,
                details={"error_id": error_id},
            ),
        )

    app.include_router(api_router)

    # Ensure settings are loaded early so misconfig fails fast.
    _ = settings

    return app


app = create_app()
