"""
Main FastAPI application
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import time
import uuid
from prometheus_client import make_asgi_app

from adoption_insights.config import settings
from adoption_insights.core.database import engine, async_session, init_db, close_db
from adoption_insights.core.exceptions import AdoptionInsightsException, ValidationError
from adoption_insights.core.logging import setup_logging
from adoption_insights.core.metrics import REQUEST_COUNT, REQUEST_DURATION
from adoption_insights.schemas.base import flatten_errors
from adoption_insights.api.v1.api import api_router
from adoption_insights.services.batch_processor import BatchProcessorConfig, EventBatchProcessor
from adoption_insights.services.dialects import dialect_for
from adoption_insights.services.event_database import EventDatabase
from adoption_insights.services.partition_service import PartitionManager, PartitionScheduler

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()
    dialect = dialect_for(engine)
    app.state.session_factory = async_session
    app.state.dialect = dialect
    logger.info(f"Database connection established ({dialect.name})")

    scheduler = PartitionScheduler(
        PartitionManager(engine),
        dialect,
        max_retries=settings.PARTITION_MAX_RETRIES,
        timeout=settings.PARTITION_TASK_TIMEOUT_SECONDS,
    )
    await scheduler.start()

    processor = EventBatchProcessor(
        EventDatabase(async_session, dialect),
        BatchProcessorConfig(
            batch_size=settings.EVENTS_BATCH_SIZE,
            batch_interval=settings.EVENTS_BATCH_INTERVAL_MS,
            max_retries=settings.EVENTS_MAX_RETRIES,
            debug=settings.EVENTS_DEBUG,
        ),
    )
    processor.start()
    app.state.processor = processor

    yield

    # Shutdown
    logger.info("Shutting down application")

    await processor.stop(flush=True)
    await scheduler.stop()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Adoption insights event ingestion and analytics",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request tracking middleware
@app.middleware("http")
async def track_requests(request: Request, call_next):
    """
    Track request metrics and add request ID
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(duration)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(duration)

    return response


# Exception handlers
@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid event data", "errors": flatten_errors(exc)}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "errors": exc.field_errors}
    )


@app.exception_handler(AdoptionInsightsException)
async def application_error_handler(request: Request, exc: AdoptionInsightsException):
    logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "Internal Server Error"}
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.APP_ENV,
        "api_docs": "/docs" if settings.DEBUG else None
    }


app.include_router(api_router, prefix=settings.API_PREFIX)

# Mount Prometheus metrics endpoint
if settings.PROMETHEUS_ENABLED:
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "adoption_insights.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
