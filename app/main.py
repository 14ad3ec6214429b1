from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api import health_router, router
from datastore.credential_store import CredentialStore, build_default_credential_store
from datastore.reading_store import ReadingStore, build_default_reading_store
from errors import TrackerError
from logging_config import configure_logging
from services.telemetry import TelemetrySnapshot
from settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # make sure a credential exists before the first request arrives
    app.state.credential_store.get_or_create_token()
    logger.info("API ready")
    yield
    logger.info("API shutting down")


async def handle_tracker_error(_request: Request, exc: TrackerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error serving %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error."},
    )


def create_app(
    reading_store: Optional[ReadingStore] = None,
    credential_store: Optional[CredentialStore] = None,
    telemetry: Optional[TelemetrySnapshot] = None,
) -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Remote Tracker",
        description="Scheduled location sampling with an authenticated read-only API.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.reading_store = reading_store or build_default_reading_store()
    app.state.credential_store = credential_store or build_default_credential_store()
    app.state.telemetry = telemetry or TelemetrySnapshot(storage_path=get_settings().storage_path)
    app.add_exception_handler(TrackerError, handle_tracker_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)
    app.include_router(health_router)
    return app
