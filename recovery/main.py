"""
FastAPI application main module.
Webhook intake, lead administration, health endpoints and the optional
embedded reconciliation worker.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import time
import os
from contextlib import asynccontextmanager

import recovery.database as database
from recovery.api.v1 import api_router
from recovery.api.webhooks import router as webhook_router
from recovery.bootstrap import build_components
from recovery.cache import check_redis_health
from recovery.config import QUEUE_SETTINGS
from recovery.errors import RecoveryError
from recovery.jobs.redis_queue import RedisDelayQueue
from recovery.utils import setup_logging, get_logger
from recovery.utils.observability import REQUEST_ID_HEADER, ensure_request_id

SERVICE_NAME = "cart-recovery-service"
SERVICE_VERSION = "1.0.0"

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    enable_console=True
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Builds the shared services once and tears the worker down on shutdown.
    """
    logger.info("Application startup initiated")
    worker = None
    components = None
    try:
        logger.info("Creating database tables")
        database.Base.metadata.create_all(bind=database.engine)

        components = build_components()
        app.state.parser_registry = components.registry
        app.state.paid_flags = components.flags
        app.state.reconciliation_queue = components.queue
        app.state.webhook_intake = components.intake
        app.state.redis_client = components.redis_client

        # Stalled-job recovery belongs to the standalone worker only; API
        # replicas never touch another consumer's active list.
        if QUEUE_SETTINGS.get("embedded_worker", False):
            worker = components.make_worker()
            worker.start()
            logger.info("Embedded reconciliation worker started")
        elif not isinstance(components.queue, RedisDelayQueue):
            logger.warning("In-memory queue without an embedded worker; scheduled jobs will never run")
        else:
            logger.info("Embedded worker disabled; run `python -m recovery.worker` to consume the queue")

        logger.info("Application startup completed successfully")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown initiated")
        if worker is not None:
            worker.stop(join_timeout=float(QUEUE_SETTINGS.get("poll_timeout_seconds", 5.0)) + 1)
        if components is not None:
            components.queue.shutdown()
        logger.info("Application shutdown completed")


app = FastAPI(
    title="Cart Recovery Service",
    description="""
    Turns abandoned checkouts into sales-recovery leads.

    ## Webhooks
    `POST /webhook/{platform}/{store_id}` accepts raw checkout webhooks.
    Approved payments are remembered for a short window; pending orders are
    re-checked after a grace delay and become leads only if still unpaid.

    ## Authentication
    Lead administration endpoints take the admin token as a Bearer credential:
    ```
    Authorization: Bearer <ADMIN_API_TOKEN>
    ```
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

# CORS middleware - configure appropriately for production
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = ensure_request_id(request.headers)
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time
    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response


@app.exception_handler(RecoveryError)
async def recovery_exception_handler(request: Request, exc: RecoveryError):
    """Map domain errors to their HTTP status; retryable ones tell the sender to try again."""
    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request rejected",
        error=exc.message,
        error_code=exc.error_code,
        status_code=exc.status_code,
        retryable=exc.retryable,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "error_code": exc.error_code,
            "retryable": exc.retryable,
            "request_id": request_id
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=str(exc.errors()),
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "details": [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()],
            "request_id": request_id
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )


@app.get("/health", tags=["health"], summary="Basic health check")
def health_check():
    """Basic health check endpoint for load balancers."""
    queue = getattr(app.state, "reconciliation_queue", None)
    use_redis = isinstance(queue, RedisDelayQueue)
    result = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "queue_backend": "redis" if use_redis else "memory",
    }
    if use_redis:
        result["redis_status"] = "healthy" if check_redis_health(getattr(app.state, "redis_client", None)) else "unavailable"
    return result


@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
def detailed_health_check():
    """Detailed health check with database, Redis and queue status."""
    health_status = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "checks": {}
    }

    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except SQLAlchemyError as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"
    finally:
        db.close()

    queue = getattr(app.state, "reconciliation_queue", None)
    if isinstance(queue, RedisDelayQueue):
        healthy = check_redis_health(getattr(app.state, "redis_client", None))
        health_status["checks"]["redis"] = "healthy" if healthy else "unavailable"
        if not healthy:
            health_status["status"] = "degraded"

    if queue is not None:
        snap = queue.snapshot()
        health_status["checks"]["queue"] = {
            k: v for k, v in snap.items() if k in {"backend", "depth", "ready", "scheduled", "active", "redis_active"}
        }

    return health_status


@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Cart Recovery Service API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "webhooks": "/webhook/{platform}/{store_id}",
        "api_base": "/api/v1"
    }


app.include_router(webhook_router, prefix="/webhook", tags=["webhooks"])
app.include_router(api_router, prefix="/api/v1")

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "recovery.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["recovery"],
        log_level="info",
        access_log=True
    )
