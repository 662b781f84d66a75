from fastapi import APIRouter, Depends
from redis.asyncio import Redis

from fitacademy.deps import get_redis
from fitacademy.auth.dependencies import require_viewer
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(r: Redis = Depends(get_redis), viewer: Viewer = Depends(require_viewer)):
    return {"notifications": await notification_service.list_active(r, viewer.id)}
