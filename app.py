"""
DoseTrack Backend
FastAPI application tracking daily medication doses, with background
reconciliation of missed doses
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck

from api import include_routers
from services.errors import InvalidSlotIndex, MedicationNotFound, PersistenceFailure
from services.reconciliation_scheduler import ReconciliationScheduler
from services.reconciliation_service import reconciliation_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}, reference timezone: {settings.REFERENCE_TIMEZONE}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = ReconciliationScheduler(reconciliation_service)
        scheduler.start()
    else:
        logger.info("Reconciliation scheduler disabled via SCHEDULER_ENABLED")
    app.state.reconciliation_scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        scheduler.shutdown()
    app.state.reconciliation_scheduler = None
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## DoseTrack API

    Tracks recurring daily medication schedules and records whether each
    scheduled dose was taken, missed or skipped.

    ### Features
    - **Schedules**: one or more daily dose times per medication
    - **Mark taken**: record a dose for today
    - **Missed-dose detection**: doses not taken within the grace period are logged as missed once per day
    - **Daily reset**: taken state clears once per day
    - **History & stats**: audit log and adherence rate
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(MedicationNotFound)
async def medication_not_found_handler(request: Request, exc: MedicationNotFound):
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidSlotIndex)
async def invalid_slot_index_handler(request: Request, exc: InvalidSlotIndex):
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.warning(f"Persistence failure on {request.url.path}: {exc}")
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage temporarily unavailable, please retry")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred" if not settings.DEBUG else str(exc)
    )


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()
    scheduler = getattr(app.state, "reconciliation_scheduler", None)

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            },
            "scheduler": {
                "enabled": settings.SCHEDULER_ENABLED,
                "running": bool(scheduler and scheduler.running),
                "jobs": {
                    job_id: next_run.isoformat() if next_run else None
                    for job_id, next_run in (scheduler.get_jobs() if scheduler else {}).items()
                }
            }
        },
        "config": {
            "reference_timezone": settings.REFERENCE_TIMEZONE,
            "grace_period_minutes": settings.GRACE_PERIOD_MINUTES,
            "daily_reset_time": settings.DAILY_RESET_TIME,
            "tick_interval_seconds": settings.MINUTE_TICK_INTERVAL_SECONDS
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
