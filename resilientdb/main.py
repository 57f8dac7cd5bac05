import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from resilientdb.api.main import api_router
from resilientdb.core.config import settings
from resilientdb.core.db import build_database
from resilientdb.core.pool import NotConnectedError, RetriesExhaustedError

_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    database = build_database(settings)
    app.state.database = database
    database.start()
    try:
        yield
    finally:
        await run_in_threadpool(database.shutdown)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: standardized error response format
# ---------------------------------------------------------------------------


@app.exception_handler(RetriesExhaustedError)
@app.exception_handler(NotConnectedError)
async def database_unavailable_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Database down or retries exhausted: tell the client to come back later."""
    _logger.warning(
        "Database unavailable on %s %s: %s", request.method, request.url.path, exc
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions: log and return 500 with safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


app.include_router(api_router, prefix=settings.API_V1_STR)
