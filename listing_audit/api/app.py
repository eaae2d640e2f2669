"""
FastAPI application factory.

Errors are rendered in one place: AppError subclasses carry their status
and JSON body, request-body schema failures become 400s, and anything else
is logged and answered with a generic 500.
"""

from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from listing_audit import __version__
from listing_audit.api.container import ServiceContainer
from listing_audit.api.routes import health_router, router
from listing_audit.config.settings import Settings, get_settings
from listing_audit.utils.errors import AppError
from listing_audit.utils.logger import LogContext, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Build the API with its service container attached to `app.state`."""
    settings = settings or get_settings()
    container = container or ServiceContainer(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API starting", env=settings.app_env, services=settings.configured_services())
        yield
        await container.close()
        logger.info("API stopped")

    app = FastAPI(
        title="Listing Audit API",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.container = container

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        with LogContext(request_id=request_id, path=request.url.path):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log("Request failed", path=request.url.path, code=exc.code, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(p) for p in err["loc"] if p != "body") or "body",
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request data",
                "code": "VALIDATION_ERROR",
                "details": details,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    app.include_router(health_router)
    app.include_router(router)
    return app


__all__ = ["create_app"]
