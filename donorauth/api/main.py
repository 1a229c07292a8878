"""
FastAPI application for the donor identity and authentication API.

Startup opens the donor store's connection pool and applies the SQL
migrations. Shutdown closes the pool. Routes live under /v1.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from psycopg import OperationalError
from psycopg_pool import ConnectionPool, PoolTimeout

from donorauth.adapters.repository.postgres import run_migrations
from donorauth.api.v1 import router as v1_router
from donorauth.api.v1.routes import RETRY_AFTER_SECONDS
from donorauth.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

tags_metadata = [
    {
        "name": "v1",
        "description": "Donor registration, verification status, password setup and login",
    },
]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


def open_donor_pool(settings: Settings) -> ConnectionPool:
    """
    Open the donor store pool.

    The pool timeout bounds every checkout and the server-side
    statement_timeout bounds every query, so a stalled database surfaces
    as an unavailable store just like an unreachable one.
    """
    logger.info(
        "Opening donor store pool (min=%d, max=%d)",
        settings.pool_min_size,
        settings.pool_max_size,
    )
    return ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.store_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={settings.statement_timeout_ms}"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    configure_logging(settings)

    pool = open_donor_pool(settings)
    run_migrations(pool)
    app.state.pool = pool
    logger.info("donorauth ready")

    yield

    pool.close()
    logger.info("Donor store pool closed")


app = FastAPI(
    title="donorauth",
    description="Hash-based donor identity, password login and the "
    "email verification / staff activation lifecycle",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """
    Report whether the donor store answers.

    Returns 503 with Retry-After when the pool cannot hand out a working
    connection, matching how the v1 routes report an unavailable store.
    """
    try:
        with request.app.state.pool.connection() as conn:
            conn.execute("SELECT 1")
    except (OperationalError, PoolTimeout) as e:
        logger.warning("Health check failed: donor store unavailable (%s)", type(e).__name__)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    return JSONResponse(content={"status": "healthy"})
