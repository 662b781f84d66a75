from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
from redis.asyncio import Redis
from redis.exceptions import RedisError
from pymongo.database import Database
from pymongo.errors import PyMongoError
import logging

from fitacademy.deps import get_redis, get_db, get_backend, get_certificates
from fitacademy.clients.backend import BackendClient, BackendUnavailable
from fitacademy.services.certificate_service import CertificateTracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"], prefix="/api/v1")

@router.get("/health", summary="Health Check", description="Check the health status of the application and its dependencies")
async def health_check(r: Redis = Depends(get_redis),
                       db: Database = Depends(get_db),
                       backend: BackendClient = Depends(get_backend),
                       tracker: CertificateTracker = Depends(get_certificates)):
    services = {}

    # Test Redis connection
    try:
        await r.ping()
        services["redis"] = {"status": "connected", "error": None}
    except (RedisError, ConnectionError) as e:
        logger.warning(f"Redis connection failed: {str(e)}")
        services["redis"] = {"status": "disconnected", "error": "Connection failed"}

    # Test MongoDB connection
    try:
        db.command("ping")
        services["mongodb"] = {"status": "connected", "error": None}
    except PyMongoError as e:
        logger.warning(f"MongoDB connection failed: {str(e)}")
        services["mongodb"] = {"status": "disconnected", "error": "Connection failed"}

    # Upstream platform API
    try:
        await backend.ping()
        services["backend"] = {"status": "connected", "error": None}
    except BackendUnavailable as e:
        logger.warning(f"Backend unreachable: {str(e)}")
        services["backend"] = {"status": "disconnected", "error": "Connection failed"}

    connected = [name for name, s in services.items() if s["status"] == "connected"]
    if len(connected) == len(services):
        overall_status = "healthy"
    elif connected:
        overall_status = "degraded"
    else:
        overall_status = "unhealthy"

    response = {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
        "certificate_polls": len(tracker.active()),
    }

    # Return appropriate HTTP status
    if overall_status == "unhealthy":
        raise HTTPException(status_code=503, detail=response)

    return response
