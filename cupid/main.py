"""
Cupid Discovery — FastAPI Application Entry Point

  * lifespan: DB pool warm-up, fail-open Redis connect, orderly close
  * request timeout and structured request logging (request id and caller
    bound into structlog contextvars for every downstream log line)
  * one exception handler rendering every ``DiscoveryError``
  * liveness and deep readiness probes
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from cupid.api.deps import USER_ID_HEADER
from cupid.config import get_settings
from cupid.database import async_session_factory, engine
from cupid.errors import DiscoveryError
from cupid.services.cache_service import close_redis, connect_redis, get_redis

settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("cupid")

REQUEST_ID_HEADER = "X-Request-Id"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
    )

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_pool_initialised")

    # An unreachable Redis leaves the cache disabled, never blocks startup.
    await connect_redis()
    logger.info("startup_complete")

    yield

    logger.info("shutdown_begin")
    await close_redis()
    await engine.dispose()
    logger.info("shutdown_complete")


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs past ``REQUEST_TIMEOUT_SECONDS``."""

    def __init__(self, app, timeout_seconds: float) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("request_timeout", path=request.url.path, timeout=self.timeout_seconds)
            return JSONResponse(
                status_code=504,
                content={"detail": "Request timed out", "code": "timeout"},
            )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request id and caller for every log line, then log the outcome."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            caller=request.headers.get(USER_ID_HEADER),
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response


app = FastAPI(
    title="Cupid Discovery",
    description="Profile discovery, reciprocal matching and swipe quotas",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Last added runs first.
app.add_middleware(RequestContextMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DiscoveryError)
async def discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
    log = logger.bind(method=request.method, path=request.url.path, code=exc.code)
    if exc.status_code >= 500:
        log.error("request_failed", status=exc.status_code, **exc.context)
    else:
        log.info("request_rejected", status=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, **exc.public_context()},
    )


# -- Health-check endpoints ------------------------------------------------ #


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    """Liveness: the process is up and serving."""
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: database and Redis connectivity.

    Redis being down degrades the service but does not fail it: the cache is
    fail-open.
    """
    result: dict = {
        "status": "healthy",
        "database": "connected",
        "redis": "connected",
    }

    # Database
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_db_failure", error_type=type(exc).__name__)
        result["database"] = "error"
        result["status"] = "unhealthy"

    # Redis
    redis = get_redis()
    if redis is None:
        result["redis"] = "disabled" if not settings.CACHE_ENABLED else "not_initialised"
        if settings.CACHE_ENABLED and result["status"] == "healthy":
            result["status"] = "degraded"
    else:
        try:
            await asyncio.wait_for(redis.ping(), timeout=settings.CACHE_TIMEOUT_SECONDS)
        except Exception as exc:
            logger.warning("health_redis_failure", error_type=type(exc).__name__)
            result["redis"] = "error"
            if result["status"] == "healthy":
                result["status"] = "degraded"

    return result


# -- API router ------------------------------------------------------------ #

from cupid.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
