"""
Token Volume Leaderboard: FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings
from core.database import dispose_engine
from core.dependencies import get_daily_update_job
from core.exceptions import TokenLeaderboardError
from core.logging import configure_logging
from core.responses import err
from routers import admin, schedule, tokens, volume
from sync.scheduler import build_scheduler, next_run_time

configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("api.startup", env=settings.APP_ENV, log_level=settings.LOG_LEVEL)

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = build_scheduler(get_daily_update_job())
        scheduler.start()
        logger.info("scheduler.start", next_run=next_run_time().isoformat())

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("scheduler.stop")
    await get_daily_update_job().wait()
    await dispose_engine()
    logger.info("api.shutdown")


app = FastAPI(
    title="Token Volume Leaderboard API",
    description="Leaderboard de volumen de tokens de Binance Alpha con historial diario.",
    version="1.0.0",
    docs_url="/docs" if settings.APP_ENV != "production" else None,
    redoc_url="/redoc" if settings.APP_ENV != "production" else None,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middlewares
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
)

# ---------------------------------------------------------------------------
# Exception handlers globales: mantienen formato { data, error, meta }
# ---------------------------------------------------------------------------


@app.exception_handler(TokenLeaderboardError)
async def domain_exception_handler(request: Request, exc: TokenLeaderboardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("domain_error", path=str(request.url), error=exc.message, kind=type(exc).__name__)
    else:
        logger.info("domain_error", path=str(request.url), error=exc.message, kind=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=err(exc.message))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=err(exc.detail),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=err(f"Error de validación: {exc.errors()}"),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=str(request.url), error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=err(f"Error interno del servidor: {type(exc).__name__}"),
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(tokens.router, prefix="/api/tokens", tags=["tokens"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(schedule.router, prefix="/api", tags=["schedule"])
app.include_router(volume.router, prefix="/api/volume", tags=["volume"])


# ---------------------------------------------------------------------------
# Health check (sin auth)
# ---------------------------------------------------------------------------


@app.get("/health", tags=["health"])
async def health_check() -> dict:
    return {"status": "ok", "env": settings.APP_ENV}
