"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers all API routers.
"""
import logging
import os
import threading
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import get_orchestrator
from .api.routers import config, health, imports, logs, templates
from .core.config import settings
from .core.logging_config import configure_logging
from .db.session import init_db

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


def _recover_batches() -> None:
    try:
        orchestrator = get_orchestrator()
        stalled = orchestrator.fail_stalled_batches()
        summaries = orchestrator.resume_pending()
    except Exception:
        logger.exception("Recovering unfinished batches failed")
        return
    if stalled:
        logger.warning("Marked %d stalled batch(es) failed", len(stalled))
    if summaries:
        logger.info("Resumed %d pending batch(es)", len(summaries))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and pick up batches a previous process left unfinished."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    try:
        init_db()
        logger.info("Database tables ready")
    except Exception:
        logger.exception("Failed to initialize database tables")
        raise

    threading.Thread(target=_recover_batches, name="recover-batches", daemon=True).start()

    yield


app = FastAPI(
    title="SheetSync API",
    version="1.0.0",
    description="Stage Excel spreadsheets and import their rows into ERPNext",
    lifespan=lifespan,
)

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)
app.include_router(logs.router)
app.include_router(templates.router)
app.include_router(config.router)
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "SheetSync API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "sheetsync-api"
    }
