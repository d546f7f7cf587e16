"""
CastDrop HTTP application.

``create_app()`` wires settings, routers, the CORS layer and the error
renderers together; ``app`` is the instance servers import.

    R2_MOCK_MODE=true uvicorn castdrop.main:app --reload     # local, in-memory bucket
    gunicorn castdrop.main:app -k uvicorn.workers.UvicornWorker
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.cors import cors_headers
from .api.dependencies import get_storage_client
from .api.routes import health, uploads, videos
from .config.settings import Settings, get_settings
from .core.media.sweeper import ExpirySweeper, run_periodically

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def _start_sweeper(settings: Settings) -> Optional[asyncio.Task]:
    """Run the expiry sweep in-process when an interval is configured."""
    if settings.sweep_interval_minutes <= 0:
        return None

    sweeper = ExpirySweeper(
        store=get_storage_client(settings),
        config=settings.media_config,
    )
    logger.info(
        "Starting in-process expiry sweep",
        extra={"interval_minutes": settings.sweep_interval_minutes}
    )
    return asyncio.create_task(
        run_periodically(sweeper, settings.sweep_interval_minutes * 60)
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report missing configuration, then own the optional sweep task."""
    settings = get_settings()

    logger.info(
        "CastDrop API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {"r2": settings.r2_mock_mode},
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    sweep_task = _start_sweeper(settings)

    yield

    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass

    logger.info("CastDrop API shutting down")


def _error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Invalid JSON"
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    return f"Invalid {field}: {first.get('msg')}" if field else f"Invalid request: {first.get('msg')}"


def create_app() -> FastAPI:
    """Build a fully wired application from the current settings."""
    settings = get_settings()

    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Drop a video, stream it anywhere, gone in an hour.

        ## Workflow

        1. **Start**: `POST /upload/init` with `{filename, contentType, size}`
           - Receive an upload id and the number of chunks to send

        2. **Upload chunks**: `PUT /upload/{id}/chunk/{index}`
           - Raw bytes, indices 0..totalChunks-1, any order

        3. **Finalize**: `POST /upload/{id}/finalize`
           - Chunks are assembled into one video; returns its URL

        4. **Play**: `GET /video/{id}`
           - Supports Range requests for seeking and casting

        5. **Delete**: `DELETE /video/{id}`
           - Or let it expire; everything is removed after the retention window
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    allowed_origins = settings.cors_origins_list

    # CORS on every response, and 204 for every preflight
    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)
        response.headers.update(cors_headers(allowed_origins, request.headers.get("origin")))
        return response

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        uploads.router,
        prefix="/upload",
        tags=["Uploads"],
    )

    app.include_router(
        videos.router,
        prefix="/video",
        tags=["Videos"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "CastDrop API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        """Render HTTP errors as {"error": message}, which the client shows verbatim."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        """
        Malformed requests are client errors (400), not 422s.

        A path parameter that fails validation (an id that is not a UUID,
        a chunk index out of range) means the URL names nothing we serve,
        so it is a 404.
        """
        if any(error.get("loc", ("",))[0] == "path" for error in exc.errors()):
            return JSONResponse(status_code=404, content={"error": "Not found"})

        return JSONResponse(status_code=400, content={"error": _error_message(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Anything unmapped becomes a bare 500; the traceback stays in the log.

        Starlette runs this outside the middleware stack, so the CORS
        headers are added here.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
            headers=cors_headers(allowed_origins, request.headers.get("origin")),
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "castdrop.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
