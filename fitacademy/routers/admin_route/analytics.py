from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from pymongo.database import Database

from fitacademy.deps import get_db, get_redis, get_backend
from fitacademy.auth.dependencies import require_admin
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.admin_schema import AnalyticsOut
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import admin_service
from fitacademy.services.cache_stats import get_stats

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/analytics", response_model=AnalyticsOut)
async def analytics(period: str = Query("30d", regex="^(7d|30d|90d|1y)$"),
                    r: Redis = Depends(get_redis),
                    backend: BackendClient = Depends(get_backend),
                    viewer: Viewer = Depends(require_admin)):
    return await admin_service.get_analytics(r, backend, viewer.token, period)


@router.get("/cache/stats")
async def cache_stats(r: Redis = Depends(get_redis), viewer: Viewer = Depends(require_admin)):
    return await get_stats(r)


@router.get("/audit")
async def audit_log(limit: int = Query(50, ge=1, le=500),
                    db: Database = Depends(get_db),
                    viewer: Viewer = Depends(require_admin)):
    return {"actions": await admin_service.recent_actions(db, limit)}
