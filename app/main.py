# app/main.py
"""
Application factory for the outbound mail workspace API.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.config import Settings, settings
from app.dependencies import SESSION_HEADER
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import data, health, jobs, workspace
from app.services.kv_store import KeyValueStore, build_stores
from app.services.pdf_cache import PdfBlobCache
from app.services.seed_loader import SeedLoader
from app.services.workspace_errors import (
    DocumentNotFoundError,
    JobNotFoundError,
    MailGroupNotFoundError,
    WorkspaceValidationError,
)
from app.services.workspace_service import WorkspaceService

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup and close the storage backends on shutdown."""
    logger.info(
        "Application starting",
        environment=app.state.settings.environment,
        debug=app.state.settings.debug,
        storage_backend=app.state.settings.get_storage_config()["backend"],
    )

    yield

    logger.info("Application shutting down")

    shutdown_errors = []
    for name in ("session_store", "local_store"):
        try:
            await getattr(app.state, name).close()
        except Exception as e:
            logger.error("Error closing storage backend", store=name, error=str(e))
            shutdown_errors.append(f"{name}: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkspaceValidationError)
    async def workspace_validation_handler(request: Request, exc: WorkspaceValidationError):
        logger.info("Workspace request rejected", path=request.url.path, reason=exc.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": exc.message})

    async def not_found_handler(request: Request, exc):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": exc.message})

    for exc_class in (MailGroupNotFoundError, DocumentNotFoundError, JobNotFoundError):
        app.add_exception_handler(exc_class, not_found_handler)


def create_app(
    config: Settings | None = None,
    local_store: KeyValueStore | None = None,
    session_store: KeyValueStore | None = None,
    validation_sleep=asyncio.sleep,
) -> FastAPI:
    """
    Build the application and its services.

    Stores can be injected (tests); otherwise they come from the storage
    configuration.
    """
    config = config or settings
    if local_store is None or session_store is None:
        built_local, built_session = build_stores(config.get_storage_config())
        local_store = local_store or built_local
        session_store = session_store or built_session

    seed_loader = SeedLoader(config.resolve_data_path())
    cache = PdfBlobCache(local_store, max_persist_bytes=config.PDF_CACHE_MAX_BYTES)

    app = FastAPI(
        title="Outbound Mail Workspace",
        description="Outbound mail wizard, validation, dispatch and tracking API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.local_store = local_store
    app.state.session_store = session_store
    app.state.seed_loader = seed_loader
    app.state.pdf_base_path = config.resolve_pdf_base_path()
    app.state.workspace_service = WorkspaceService(
        seed_loader=seed_loader,
        local_store=local_store,
        session_backend=session_store,
        cache=cache,
        session_ttl_s=config.SESSION_TTL_SECONDS,
        validation_step_percent=config.VALIDATION_STEP_PERCENT,
        validation_interval_s=config.validation_interval_seconds(),
        validation_sleep=validation_sleep,
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(data.router)
    app.include_router(workspace.router)
    app.include_router(jobs.router)

    _register_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
            session_id=request.headers.get(SESSION_HEADER),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
