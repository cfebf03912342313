"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from otp_verify.api.router import router as otp_router
from otp_verify.config import settings
from otp_verify.database.engine import async_session_factory, init_db
from otp_verify.services.cleanup import OtpCleanupService

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

cleanup_service = OtpCleanupService(
    async_session_factory, interval_seconds=settings.cleanup_interval_seconds
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")
    if settings.cleanup_enabled:
        cleanup_service.start()
    yield
    await cleanup_service.stop()
    logger.info("Shutting down %s …", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Issues and verifies email one-time passcodes",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(otp_router)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}


def run() -> None:
    """Serve the app with uvicorn (the ``otp-verify`` console script)."""
    import uvicorn

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )
