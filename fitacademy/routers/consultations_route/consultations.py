from fastapi import APIRouter, Depends, HTTPException, status
from redis.asyncio import Redis

from fitacademy.deps import get_redis, get_backend
from fitacademy.auth.dependencies import require_viewer
from fitacademy.clients.backend import BackendClient
from fitacademy.config import settings
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.schemas.consultation_schema import BookingIn, BookingOut
from fitacademy.services import consultation_service, notification_service
from fitacademy.services.consultation_service import BookingRejected

router = APIRouter(prefix="/consultations", tags=["consultations"])


@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(payload: BookingIn,
                         r: Redis = Depends(get_redis),
                         backend: BackendClient = Depends(get_backend),
                         viewer: Viewer = Depends(require_viewer)):
    try:
        result = await consultation_service.create_booking(backend, viewer, payload.dict())
    except BookingRejected as e:
        await notification_service.push(r, viewer.id, "error", e.message, ttl=settings.NOTIFICATION_TTL_SECONDS)
        detail = {"message": e.message}
        if e.next_step:
            detail["next_step"] = e.next_step
        raise HTTPException(status_code=e.status_code, detail=detail)
    await notification_service.push(r, viewer.id, "success", result["message"], ttl=settings.NOTIFICATION_TTL_SECONDS)
    return result
