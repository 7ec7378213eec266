"""FastAPI application setup for Lorekeeper."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lorekeeper.api.dependencies import AppContainer
from lorekeeper.api.routes_admin import router as admin_router
from lorekeeper.api.routes_ingest import router as ingest_router
from lorekeeper.api.routes_query import router as query_router
from lorekeeper.core.config import Settings, get_settings
from lorekeeper.core.errors import (
    ConfigurationError,
    ConflictError,
    LorekeeperError,
    NotFoundError,
    RetryExhaustedError,
    UpstreamError,
    ValidationError,
)
from lorekeeper.core.logging import configure_logging, get_logger
from lorekeeper.retrieval.llm import LLMClient
from lorekeeper.sync.registry import build_connector
from lorekeeper.sync.service import ConnectorFactory

logger = get_logger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[LorekeeperError], int], ...] = (
    (ValidationError, 400),
    (ConfigurationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (UpstreamError, 502),
    (RetryExhaustedError, 502),
)


def _status_for(exc: LorekeeperError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def _handle_domain_error(request: Request, exc: LorekeeperError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(
    settings: Settings | None = None,
    llm: LLMClient | None = None,
    connector_factory: ConnectorFactory = build_connector,
) -> FastAPI:
    """Build the application; services are created when the lifespan starts."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        resolved = settings or get_settings()
        configure_logging(resolved.log_level, use_json=resolved.log_json)
        container = AppContainer.build(resolved, llm=llm, connector_factory=connector_factory)
        app.state.container = container
        try:
            yield
        finally:
            container.close()

    application = FastAPI(
        title="Lorekeeper",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://127.0.0.1:5174",
            "http://localhost:5174",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(LorekeeperError, _handle_domain_error)
    application.include_router(ingest_router, prefix="/documents", tags=["documents"])
    application.include_router(query_router, prefix="", tags=["query"])
    application.include_router(admin_router, prefix="", tags=["admin"])

    @application.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    return application


app = create_app()
