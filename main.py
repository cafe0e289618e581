"""
main.py
-------
Entry point for the notes service.

create_application() assembles the app: lifespan, CORS, the per-request log
context, the four routers and the error handlers that turn every failure
into {"error": ..., "code": ..., ...meta}.

    uvicorn main:app --reload      # local
    uvicorn main:app --workers 4   # production
"""

import uuid
from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notes_saas.api.routes import admin, auth, notes, tenants
from notes_saas.core.config import settings
from notes_saas.core.errors import ErrorCode, NotesError
from notes_saas.core.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from notes_saas.core.principal import Principal
from notes_saas.dependencies import get_optional_principal, get_store

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Configure logging and build the credential store before the first request
    (a fixture provider in production fails here, not on first use). On
    shutdown, drain the database pool if one was opened.
    """
    configure_logging()
    logger.info(
        "Notes service starting",
        env=settings.APP_ENV,
        debug=settings.DEBUG,
        identity_provider=settings.IDENTITY_PROVIDER,
    )
    get_store()
    yield
    if settings.IDENTITY_PROVIDER == "store":
        from notes_saas.db.session import engine

        await engine.dispose()
        logger.info("Database pool disposed")


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(NotesError)
    async def notes_error_handler(request: Request, exc: NotesError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed", code=exc.code.value, cause=repr(exc.__cause__))
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # loc[0] is the request part (body / query / path)
        details = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
                "message": error.get("msg"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Validation failed",
                "code": ErrorCode.VALIDATION_ERROR.value,
                "details": details,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", error_type=type(exc).__name__, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "code": ErrorCode.INTERNAL_ERROR.value},
        )


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-tenant notes SaaS backend with JWT auth, account lockout, "
            "plan quotas and full tenant data isolation."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        clear_request_context()
        bind_request_context(
            request_id=request_id, method=request.method, path=request.url.path
        )
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    for module in (auth, tenants, notes, admin):
        app.include_router(module.router)

    register_error_handlers(app)

    @app.get("/health", tags=["Health"], summary="Liveness check")
    async def health(
        principal: Annotated[Optional[Principal], Depends(get_optional_principal)],
    ) -> dict:
        """A valid token adds the caller's tenant; a missing or bad one is ignored."""
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "env": settings.APP_ENV,
            "authenticated": principal is not None,
            "tenant": principal.tenant_slug if principal else None,
        }

    return app


app = create_application()
