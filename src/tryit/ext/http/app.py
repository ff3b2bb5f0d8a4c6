"""Result query surface (FastAPI).

    GET {prefix}/{try_id}                       -> TryRecord summary
    GET {prefix}/{try_id}/trace                 -> SpanNode forest
    GET {prefix}/{try_id}/issues                -> Issue list
    GET {prefix}/{try_id}/methods?page=&size=   -> self-duration ranking page

Malformed try ids and out-of-range paging answer 400 with {"error": {...}}.
Everything else answers 200, with status "pending" while no spans are available.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tryit.analysis import IssuesView, MethodPage, TraceView, TryRecord
from tryit.foundation.config import TryitSettings, get_settings
from tryit.foundation.errors import ErrorCode, TryError, TryException
from tryit.io.storage import TraceStore, create_exporter, create_store
from tryit.runtime.observability import Tracer
from tryit.runtime.observability.logging import configure_logging, get_logger
from tryit.runtime.sampling import Sampler
from tryit.service import TryRegistry, TryResultService, validate_pagination

from .middleware import TryMiddleware

log = get_logger("tryit.api")

router = APIRouter(tags=["tries"])


def get_service(request: Request) -> TryResultService:
    return request.app.state.try_service


def get_api_settings(request: Request) -> TryitSettings:
    return request.app.state.settings


ServiceDep = Annotated[TryResultService, Depends(get_service)]
SettingsDep = Annotated[TryitSettings, Depends(get_api_settings)]


@router.get("/{try_id}", response_model=TryRecord)
async def get_summary(try_id: str, service: ServiceDep) -> TryRecord:
    return await service.summary(try_id)


@router.get("/{try_id}/trace", response_model=TraceView)
async def get_trace(try_id: str, service: ServiceDep) -> TraceView:
    return await service.trace(try_id)


@router.get("/{try_id}/issues", response_model=IssuesView)
async def get_issues(try_id: str, service: ServiceDep) -> IssuesView:
    return await service.issues(try_id)


@router.get("/{try_id}/methods", response_model=MethodPage)
async def get_methods(
    try_id: str, service: ServiceDep, settings: SettingsDep, page: int = 0, size: int | None = None,
) -> MethodPage:
    size = settings.api.default_page_size if size is None else size
    validate_pagination(page, size, settings.api.max_page_size)
    return await service.methods(try_id, page, size)


# ─────────────────────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────────────────────


def _error_response(error: TryError, status_code: int) -> JSONResponse:
    return JSONResponse({"error": error.model_dump(mode="json")}, status_code=status_code)


async def handle_try_exception(request: Request, exc: TryException) -> JSONResponse:
    log.info("request rejected", path=request.url.path, error_code=exc.error.code.value)
    return _error_response(exc.error, exc.status_code)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Non-integer page/size are pagination errors, not 422s."""
    fields = [str(err.get("loc", ("",))[-1]) for err in exc.errors()]
    code = ErrorCode.INVALID_PAGINATION if set(fields) <= {"page", "size"} else ErrorCode.UNKNOWN
    return _error_response(TryError(code=code, message="Invalid request parameters", details=",".join(fields)), 400)


# ─────────────────────────────────────────────────────────────────────────────
# App factory
# ─────────────────────────────────────────────────────────────────────────────


def create_app(
    settings: TryitSettings | None = None,
    *,
    store: TraceStore | None = None,
    registry: TryRegistry | None = None,
    tracer: Tracer | None = None,
) -> FastAPI:
    """Wire store, tracer, sampler and query routes into a FastAPI app.

    Example:
        >>> app = create_app()
        >>> # uvicorn tryit.ext.http.app:create_app --factory
    """
    settings = settings or get_settings()
    configure_logging(settings.logging.format, settings.logging.level)
    store = store if store is not None else create_store(settings)
    registry = registry if registry is not None else TryRegistry()
    tracer = tracer or Tracer.from_settings(settings, create_exporter(settings, store))
    tracer.configure_global()
    service = TryResultService(store, registry)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
        log.info("tryit query surface starting", backend=settings.storage.backend, prefix=settings.api.prefix)
        yield
        await service.close()
        tracer.shutdown()
        log.info("tryit query surface stopped")

    app = FastAPI(title="tryit", lifespan=lifespan)
    app.state.settings = settings
    app.state.try_service = service
    app.state.try_registry = registry
    app.state.tracer = tracer
    app.add_middleware(TryMiddleware, sampler=Sampler.from_settings(settings, registry), tracer=tracer)
    app.add_exception_handler(TryException, handle_try_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router, prefix=settings.api.prefix)
    return app
