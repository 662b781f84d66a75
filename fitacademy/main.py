# main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
import logging
import sys
from fitacademy.config import settings
from fitacademy.deps import create_mongo_client, create_redis_client, create_backend_client
from fitacademy.logging_config import setup_logging
from fitacademy.middleware.error_handler import ErrorHandlerMiddleware
from fitacademy.repos.progress import ensure_indexes as ensure_progress_indexes
from fitacademy.repos.audit import ensure_indexes as ensure_audit_indexes
from fitacademy.routers.health import router as health_router
from fitacademy.routers.courses_route import courses
from fitacademy.routers.reviews_route import reviews
from fitacademy.routers.consultations_route import consultations
from fitacademy.routers.notifications_route import notifications
from fitacademy.routers.admin_route import orders, coupons, lessons, users, analytics
from fitacademy.routers.admin_route import consultations as admin_consultations
from fitacademy.services.certificate_service import CertificatePoller, CertificateTracker
from fitacademy.tasks.scheduler import create_scheduler, schedule_jobs


# Setup logging
log_level = "DEBUG" if settings.DEBUG else "INFO"
log_file = "logs/app.log" if settings.ENVIRONMENT == "production" else None
setup_logging(log_level=log_level, log_file=log_file)

logger = logging.getLogger(__name__)


app = FastAPI(
    title="FitAcademy Web API",
    description="Course, progress, review and back-office views for the fitness training platform",
    version="1.0.0"
)


def build_certificate_tracker(redis, backend) -> CertificateTracker:
    poller = CertificatePoller(
        backend,
        initial_delay=settings.CERTIFICATE_INITIAL_DELAY,
        retry_delays=settings.certificate_retry_delays,
        max_attempts=settings.CERTIFICATE_MAX_ATTEMPTS,
    )
    return CertificateTracker(redis, poller, session_ttl=settings.SESSION_TTL_SECONDS)


@app.on_event("startup")
async def startup():
    try:
        logger.info("Starting application...")

        # Database connections
        try:
            app.state.mongo_client = create_mongo_client(settings.MONGO_URI)
            app.state.db = app.state.mongo_client.get_default_database()
            logger.info("MongoDB connection established")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {str(e)}")
            sys.exit(1)

        try:
            app.state.redis = create_redis_client(settings.REDIS_URL)
            await app.state.redis.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            sys.exit(1)

        # Upstream platform API
        app.state.backend = create_backend_client(settings.BACKEND_URL, settings.BACKEND_TIMEOUT_SECONDS)
        app.state.certificates = build_certificate_tracker(app.state.redis, app.state.backend)
        logger.info(f"Backend client ready for {settings.BACKEND_URL}")

        # Database indexes
        try:
            await run_in_threadpool(ensure_progress_indexes, app.state.db)
            await run_in_threadpool(ensure_audit_indexes, app.state.db)
            logger.info("Database indexes ensured")
        except Exception as e:
            logger.error(f"Failed to ensure database indexes: {str(e)}")
            # Continue startup as this is not critical

        # Scheduler
        try:
            app.state.scheduler = create_scheduler()
            schedule_jobs(app.state.scheduler, app.state.redis, app.state.backend)
            app.state.scheduler.start()
            logger.info("Scheduler started")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {str(e)}")
            # Continue startup as this is not critical

        logger.info("Application startup completed successfully")

    except Exception as e:
        logger.critical(f"Critical startup failure: {str(e)}")
        sys.exit(1)

@app.on_event("shutdown")
async def shutdown():
    logger.info("Starting application shutdown...")

    # Shutdown scheduler
    try:
        if hasattr(app.state, 'scheduler'):
            app.state.scheduler.shutdown(wait=False)
            logger.info("Scheduler shutdown completed")
    except Exception as e:
        logger.error(f"Error shutting down scheduler: {str(e)}")

    # Stop certificate polls still in flight
    try:
        if hasattr(app.state, 'certificates'):
            await app.state.certificates.shutdown()
    except Exception as e:
        logger.error(f"Error cancelling certificate polls: {str(e)}")

    try:
        if hasattr(app.state, 'backend'):
            await app.state.backend.aclose()
            logger.info("Backend client closed")
    except Exception as e:
        logger.error(f"Error closing backend client: {str(e)}")

    # Close Redis connection
    try:
        if hasattr(app.state, 'redis'):
            await app.state.redis.close()
            logger.info("Redis connection closed")
    except Exception as e:
        logger.error(f"Error closing Redis connection: {str(e)}")

    # Close MongoDB connection
    try:
        if hasattr(app.state, 'mongo_client'):
            app.state.mongo_client.close()
            logger.info("MongoDB connection closed")
    except Exception as e:
        logger.error(f"Error closing MongoDB connection: {str(e)}")

    logger.info("Application shutdown completed")

# Error handling middleware (should be first)
app.add_middleware(ErrorHandlerMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health_router)
app.include_router(courses.router)
app.include_router(reviews.router)
app.include_router(consultations.router)
app.include_router(notifications.router)
app.include_router(orders.router)
app.include_router(coupons.router)
app.include_router(lessons.router)
app.include_router(users.router)
app.include_router(admin_consultations.router)
app.include_router(analytics.router)
