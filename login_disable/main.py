"""FastAPI application wiring for the login-disable service."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from psycopg_pool import ConnectionPool

from .api.routes import register_error_handlers, router as v1_router
from .config import get_settings
from .wiring import build_services

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    services = build_services(pool, settings)
    app.state.pool = pool
    app.state.account_service = services.accounts
    logger.info("%s %s ready", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()
        pool.wait_close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


app.include_router(v1_router)
register_error_handlers(app)
