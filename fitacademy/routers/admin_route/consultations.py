from fastapi import APIRouter, Depends
from pymongo.database import Database
from typing import Optional

from fitacademy.deps import get_db, get_backend
from fitacademy.auth.dependencies import require_admin
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.admin_schema import BookingsOut, BookingStatusIn
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import admin_service

router = APIRouter(prefix="/admin/consultations", tags=["admin"])


@router.get("", response_model=BookingsOut)
async def list_bookings(status: Optional[str] = None,
                        search: Optional[str] = None,
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.list_bookings(backend, viewer, status=status, search=search)


@router.get("/{booking_id}")
async def booking_detail(booking_id: str,
                         backend: BackendClient = Depends(get_backend),
                         viewer: Viewer = Depends(require_admin)):
    return {"booking": await admin_service.get_booking(backend, viewer, booking_id)}


@router.patch("/{booking_id}/status")
async def update_booking_status(booking_id: str, payload: BookingStatusIn,
                                db: Database = Depends(get_db),
                                backend: BackendClient = Depends(get_backend),
                                viewer: Viewer = Depends(require_admin)):
    return await admin_service.update_booking_status(
        db, backend, viewer, booking_id=booking_id, payload=payload.dict(exclude_none=True),
    )
