"""
Sticker Bot - Main Application

FastAPI application that turns images sent by users into WhatsApp-ready
stickers:
- Inbound events endpoint (/api/v1/events) with per-user admission
- Job queue on Redis (Celery) or in-process fallback
- Structured logging with structlog
- Prometheus metrics
"""

import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.logging import setup_logging, get_logger
from src.core.exceptions import register_exception_handlers, StickerBotException
from src.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from src.core.storage import get_staging
from src.engines.admission.rate_limiter import RateLimiter, make_today
from src.jobs.base import IJobQueue
from src.jobs.factory import JobQueueFactory
from src.pipeline.runner import get_job_runner
from src.services.intake import IntakeController
from src.api.dependencies import get_job_queue
from src.api.v1 import api_v1_router


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - startup and shutdown."""
    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    runner = get_job_runner()
    app.state.job_queue = JobQueueFactory.get_queue(settings, runner)
    app.state.intake = IntakeController(
        settings=settings,
        rate_limiter=RateLimiter(make_today(settings.RATE_LIMIT_TIMEZONE)),
        staging=get_staging(),
        job_queue=app.state.job_queue,
        delivery=runner.delivery,
    )

    logger.info("application_ready", queue_mode=app.state.job_queue.mode)

    yield

    logger.info("application_shutting_down")
    # Draining the embedded backlog blocks, keep it off the event loop
    await run_in_threadpool(JobQueueFactory.reset)
    logger.info("application_shutdown_complete")


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Sticker Bot

    - **Admission**: daily per-user quota and input size limit
    - **Background Removal**: rembg
    - **Outline**: white stroke around the subject silhouette
    - **Encoding**: 512x512 WebP sticker with pack metadata
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)

    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/ready", tags=["health"])
def ready(job_queue: IJobQueue = Depends(get_job_queue)):
    """Readiness check - verifies the queue backend is reachable."""
    try:
        broker_ok = job_queue.ping()
    except StickerBotException as e:
        logger.warning("readiness_check_failed", error=e.message)
        broker_ok = False

    return JSONResponse(
        status_code=200 if broker_ok else 503,
        content={
            "ready": broker_ok,
            "queue_mode": job_queue.mode,
        }
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
