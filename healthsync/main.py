"""
healthsync/main.py

Purpose: ASGI entry point

- Configures logging before anything else logs
- Opens MongoDB only when it backs session storage
- Closes every live flow controller on shutdown
- Mounts the flow router and /health

Run locally with `python -m healthsync.main`.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from healthsync.api import flow
from healthsync.core.config import settings, validate_settings
from healthsync.core.errors import add_exception_handlers
from healthsync.core.logging import get_logger, setup_logging
from healthsync.db.indexes import create_indexes
from healthsync.db.mongo import check_database_health, close_mongo_connection, connect_to_mongo
from healthsync.flow.dispatcher import close_all

setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"
SLOW_REQUEST_SECONDS = 5.0


def _uses_mongo() -> bool:
    return settings.SESSION_STORAGE_BACKEND == "mongo"


async def _startup():
    validate_settings()
    if _uses_mongo():
        await connect_to_mongo()
        await create_indexes()
    logger.info(
        f"HealthSync access service started "
        f"(environment={settings.ENVIRONMENT}, storage={settings.SESSION_STORAGE_BACKEND})"
    )


async def _shutdown():
    closed = await close_all()
    logger.info(f"Closed {closed} flow controller(s)")
    if _uses_mongo():
        await close_mongo_connection()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await _startup()
    except Exception:
        logger.critical("Startup failed", exc_info=True)
        raise

    yield

    try:
        await _shutdown()
    except Exception:
        logger.error("Shutdown did not complete cleanly", exc_info=True)


app = FastAPI(
    title="HealthSync Access",
    description="Sign-in, registration, password reset and first-time location capture",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def time_request(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(f"Slow request: {request.method} {request.url.path} took {elapsed:.2f}s")
    return response


add_exception_handlers(app)
app.include_router(flow.router, prefix=settings.API_PREFIX, tags=["Flow"])


@app.get("/health", tags=["Health"])
async def health_check():
    """
    503 when MongoDB backs session storage and does not answer a ping.
    """
    checks = {"session_storage": settings.SESSION_STORAGE_BACKEND}
    healthy = True
    if _uses_mongo():
        healthy = await check_database_health()
        checks["database"] = "healthy" if healthy else "unhealthy"

    body = {
        "status": "healthy" if healthy else "degraded",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": APP_VERSION,
        "checks": checks,
    }
    return JSONResponse(content=body, status_code=200 if healthy else 503)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "healthsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
