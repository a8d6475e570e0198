"""File Relay Application.

Main entry point for the file relay service: clients upload a file, get a
one-time download link, and the file is deleted after its first completed
download or when it expires, whichever comes first.

Modules:
    - files: multipart extraction, blob storage, file store, transfer logic
    - sessions: cookie-scoped session store and reset endpoint
    - sweeper: periodic eviction of expired files and stale sessions
"""
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from filerelay.config import RelayConfig, get_config
from filerelay.errors import RelayError
from filerelay.files.router import download_router, router as files_router
from filerelay.files.service import TransferService
from filerelay.files.storage import BlobStorage
from filerelay.files.store import FileStore
from filerelay.sessions.router import router as sessions_router
from filerelay.sessions.store import SessionStore
from filerelay.sweeper import LifecycleSweeper

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence per-request noise from the server and HTTP client libraries.
for _noisy in ("uvicorn.access", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

DEFAULT_STATIC_DIR = Path(__file__).resolve().parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sweeper on startup, stop it on shutdown."""
    config: RelayConfig = app.state.config

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    sweeper: LifecycleSweeper = app.state.sweeper
    if config.sweeper.enabled:
        await sweeper.start()
    else:
        logger.info("Sweeper disabled in config; expired files are only hidden, not deleted")

    yield  # Application runs here

    await sweeper.stop()
    logger.info("Application shutdown complete")


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)


def create_app(
    config: Optional[RelayConfig] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the application with its own stores, service and sweeper."""
    config = config or get_config()

    files = FileStore()
    sessions = SessionStore(stale_after_seconds=config.sessions.stale_after_seconds, clock=clock)
    storage = BlobStorage(config.storage.upload_dir)
    service = TransferService(
        files=files,
        sessions=sessions,
        storage=storage,
        ttl_seconds=config.storage.file_ttl_seconds,
        chunk_size=config.storage.download_chunk_bytes,
        clock=clock,
    )

    app = FastAPI(
        title="File Relay API",
        description="One-time file relay with expiring download links",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.service = service
    app.state.sweeper = LifecycleSweeper(service, interval_seconds=config.sweeper.interval_seconds)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS", "DELETE"],
        allow_headers=["Content-Type"],
    )
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    app.include_router(files_router)
    app.include_router(sessions_router)
    app.include_router(download_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.options("/{path:path}", include_in_schema=False)
    async def preflight(path: str) -> Response:
        return Response(status_code=204)

    static_dir = Path(config.static_dir) if config.static_dir else DEFAULT_STATIC_DIR
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        logger.warning("Static directory %s not found; UI disabled", static_dir)

    logger.info("File relay ready (uploads in %s)", storage.root)
    return app


app = create_app()
