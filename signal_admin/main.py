"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from signal_admin.api.routes import collectors, signals, stats
from signal_admin.config import settings
from signal_admin.db.models import Base
from signal_admin.db.session import engine
from signal_admin.errors import (
    ConnectivityError,
    DuplicateError,
    NotFoundError,
    SignalAdminError,
    TransactionError,
    ValidationError,
)
from signal_admin.realtime.notifier import ChangeNotifier

# Configure structured logging
from signal_admin.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (DuplicateError, 409),
    (ValidationError, 400),
    (TransactionError, 503),
    (ConnectivityError, 503),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting signal admin...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.notifier = None
    if settings.realtime_enabled:
        notifier = ChangeNotifier()
        await notifier.start()
        app.state.notifier = notifier
        logger.info("Realtime change notifications enabled")

    yield

    logger.info("Shutting down...")
    if app.state.notifier is not None:
        await app.state.notifier.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Waste Signal Admin",
    description="Triage, assign and report on citizen waste signals",
    version="0.1.0",
    lifespan=lifespan,
)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

app.include_router(signals.router)
app.include_router(collectors.router)
app.include_router(stats.router)


@app.exception_handler(SignalAdminError)
async def signal_admin_error_handler(request: Request, exc: SignalAdminError):
    """Render domain errors with their kind and context."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/favicon.ico")
async def favicon():
    """Return empty favicon response to avoid 404 noise."""
    return Response(status_code=204)


if __name__ == "__main__":
    uvicorn.run(
        "signal_admin.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
