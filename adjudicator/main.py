"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from adjudicator.api.v1.endpoints import health
from adjudicator.api.v1.router import api_router
from adjudicator.core.config import settings
from adjudicator.core.database import close_database, init_database
from adjudicator.core.exceptions import (
    AppError,
    ClaimAccessDeniedError,
    ClaimNotFoundError,
    ValidationError,
)
from adjudicator.core.temporal_client import close_temporal_client
from adjudicator.utils.logging import get_logger
from adjudicator.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)

ERROR_STATUS = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "Invalid Request"),
    (ClaimNotFoundError, status.HTTP_404_NOT_FOUND, "Claim Not Found"),
    (ClaimAccessDeniedError, status.HTTP_403_FORBIDDEN, "Access Denied"),
]


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "llm_provider": settings.llm_provider,
        },
    )

    try:
        await asyncio.wait_for(init_database(auto_migrate=True), timeout=settings.db_init_timeout)
        LOGGER.info("Database initialized successfully")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    close_temporal_client()
    try:
        await close_database()
    except Exception as e:
        LOGGER.error(
            "Error closing database",
            exc_info=True,
            extra={"error": str(e)}
        )


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Automated adjudication of outpatient medical insurance claims",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors as problem details."""
    status_code, title = status.HTTP_500_INTERNAL_SERVER_ERROR, "Claim Processing Failed"
    for error_type, code, error_title in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code, title = code, error_title
            break

    if status_code >= 500:
        LOGGER.error(
            f"Request failed: {exc.message}",
            exc_info=exc,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
    else:
        LOGGER.info(
            f"Request rejected: {exc.message}",
            extra={"path": request.url.path, "status": status_code},
        )

    detail = create_error_detail(title=title, status=status_code, detail=exc.message, request=request)
    return JSONResponse(status_code=status_code, content=detail.model_dump(mode="json"))


app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "adjudicator.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
