import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from gridbase.adapters import get_adapter
from gridbase.adapters.base import DatabaseAdapter
from gridbase.api import api_router
from gridbase.config import settings
from gridbase.errors import GridbaseError, NotConfiguredError, NotFoundError, ValidationFailure
from gridbase.logger import setup_global_logger
from gridbase.utils.request_id import RequestIDMiddleware

logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"detail": str(exc), "entity": exc.entity, "entity_id": exc.entity_id},
    )


async def validation_failure_handler(request: Request, exc: ValidationFailure) -> JSONResponse:
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def not_configured_handler(request: Request, exc: NotConfiguredError) -> JSONResponse:
    return JSONResponse(status_code=501, content={"detail": str(exc)})


async def gridbase_error_handler(request: Request, exc: GridbaseError) -> JSONResponse:
    logger.warning(f"Request {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Log validation errors for debugging
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.error(f"Validation error for {request.url}: {errors}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


def create_app(adapter: Optional[DatabaseAdapter] = None) -> FastAPI:
    """Build the HTTP service around an adapter (the configured backend by default)."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        generate_unique_id_function=custom_generate_unique_id,
    )
    app.state.adapter = adapter if adapter is not None else get_adapter(settings)

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ValidationFailure, validation_failure_handler)
    app.add_exception_handler(NotConfiguredError, not_configured_handler)
    app.add_exception_handler(GridbaseError, gridbase_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Request ID middleware for tracing
    app.add_middleware(RequestIDMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


def get_application() -> FastAPI:
    """App factory for ``uvicorn --factory``; sets up logging first."""
    setup_global_logger(settings.LOG_LEVEL)
    return create_app()
