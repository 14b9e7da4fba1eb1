"""
Main FastAPI application for the service record back end.
Exposes service record lifecycle and audit trail endpoints.
"""

import logging
from contextlib import asynccontextmanager

from autoservice.config import settings
from autoservice.routes import health, service_records
from autoservice.services.database import close_db, init_db
from autoservice.services.rest_store import RestRecordStore
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    if settings.RECORD_STORE_BACKEND == "rest":
        logger.info(f"Using hosted record store at {settings.SUPABASE_URL}")
        app.state.rest_store = RestRecordStore(
            settings.SUPABASE_URL, settings.SUPABASE_KEY, timeout=settings.STORE_TIMEOUT
        )
    else:
        logger.info("Using SQL record store")
        await init_db()

    yield
    # Shutdown
    rest_store = getattr(app.state, "rest_store", None)
    if rest_store is not None:
        await rest_store.aclose()
    await close_db()


app = FastAPI(
    title="Auto Service Center",
    description="Service record lifecycle and audit trail API",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(service_records.router, prefix="/api/v1", tags=["service-records"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.SERVICE_CENTER_NAME,
        "version": "1.0.0",
        "status": "running",
    }
