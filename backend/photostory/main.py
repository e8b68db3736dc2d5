import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException

from photostory.api import internal, projects, render, storage, websocket
from photostory.config import get_settings
from photostory.constants.error_codes import get_error_spec
from photostory.exceptions import ConflictError, PhotoStoryError
from photostory.models.database import create_session_maker, init_db
from photostory.models.database import engine as default_engine
from photostory.queue import JobQueue, create_queue
from photostory.render.pipeline import RenderPipeline
from photostory.schemas.envelope import ErrorInfo
from photostory.services.asset_fetcher import AssetFetcher
from photostory.services.job_service import JobService
from photostory.services.project_service import ProjectService
from photostory.services.storage_service import StorageService, create_storage_service
from photostory.services.theme_catalog import StaticThemeCatalog, ThemeCatalog
from photostory.worker import RenderWorker, ServiceJobChannel, Watchdog
from photostory.worker.runner import PipelineFactory

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        404: "NOT_FOUND",
        409: "RENDER_IN_PROGRESS",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_ERROR",
        503: "TRANSIENT_INFRA_ERROR",
    }
    return mapping.get(status_code, "HTTP_ERROR")


def _error_response(status_code: int, error: ErrorInfo, **extra) -> JSONResponse:
    content = {"error": error.model_dump(exclude_none=True), **extra}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


async def photostory_exception_handler(request: Request, exc: PhotoStoryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc.code} {exc.message}")
    if isinstance(exc, ConflictError):
        # Clients resume polling the job that is already running
        return _error_response(exc.status_code, exc.to_error_info(), jobId=exc.job_id)
    return _error_response(exc.status_code, exc.to_error_info())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_code = _http_error_code(exc.status_code)
    spec = get_error_spec(error_code)
    error = ErrorInfo(
        code=error_code,
        message=str(exc.detail),
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _error_response(exc.status_code, error)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors (422)."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"

    spec = get_error_spec("VALIDATION_ERROR")
    error = ErrorInfo(
        code="VALIDATION_ERROR",
        message=message,
        retryable=False,
        suggested_fix=spec.get("suggested_fix"),
    )
    return _error_response(422, error, detail=jsonable_encoder(errors))


# Global exception handler to ensure errors return proper JSON
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    spec = get_error_spec("INTERNAL_ERROR")
    error = ErrorInfo(
        code="INTERNAL_ERROR",
        message="Internal server error",
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _error_response(500, error)


def create_app(
    *,
    engine: AsyncEngine | None = None,
    queue: JobQueue | None = None,
    storage_service: StorageService | None = None,
    themes: ThemeCatalog | None = None,
    fetcher: AssetFetcher | None = None,
    pipeline_factory: PipelineFactory | None = None,
    run_workers: bool | None = None,
    run_watchdog: bool = True,
) -> FastAPI:
    """
    Build the API application.

    With the memory queue backend the worker pool runs inside this process
    (run_workers defaults to True); with redis it runs in separate worker
    processes that report back through /api/internal.
    """
    engine = engine or default_engine
    session_maker = create_session_maker(engine)
    queue = queue or create_queue(settings)
    storage_service = storage_service or create_storage_service(settings)
    themes = themes or StaticThemeCatalog()
    fetcher = fetcher or AssetFetcher(storage_service)
    if run_workers is None:
        run_workers = settings.queue_backend == "memory"

    manager = websocket.WebSocketManager()
    project_service = ProjectService(session_maker)
    job_service = JobService(
        session_maker,
        queue,
        sink=project_service,
        listener=websocket.RenderProgressNotifier(manager),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        await init_db(engine)
        background: list[asyncio.Task] = []
        watchdog = Watchdog(job_service)
        worker = None
        if run_watchdog:
            background.append(asyncio.create_task(watchdog.run()))
        if run_workers:
            worker = RenderWorker(
                queue,
                ServiceJobChannel(job_service, project_service),
                themes,
                storage_service,
                fetcher,
                pipeline_factory=pipeline_factory or RenderPipeline.for_project,
            )
            background.append(asyncio.create_task(worker.run()))
        app.state.worker = worker
        yield
        # Shutdown
        watchdog.stop()
        if worker is not None:
            await worker.stop()
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await queue.close()
        await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.session_maker = session_maker
    app.state.queue = queue
    app.state.storage = storage_service
    app.state.themes = themes
    app.state.project_service = project_service
    app.state.job_service = job_service
    app.state.websocket_manager = manager
    app.state.worker = None

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PhotoStoryError, photostory_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Routers
    app.include_router(render.router, prefix="/api", tags=["render"])
    app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
    app.include_router(internal.router, prefix="/api/internal", tags=["internal"])
    app.include_router(storage.router, prefix="/storage", tags=["storage"])
    app.include_router(websocket.router, tags=["websocket"])

    @app.get("/health")
    async def health_check() -> dict:
        return {
            "status": "healthy",
            "version": settings.app_version,
            "git_hash": settings.git_hash,
            "queue": await queue.stats(),
        }

    @app.get("/api/version")
    async def get_version() -> dict[str, str]:
        """Return the backend version info."""
        return {"version": settings.app_version, "git_hash": settings.git_hash}

    return app


app = create_app()
