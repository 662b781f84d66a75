from fastapi import APIRouter, Depends, Query, status
from redis.asyncio import Redis
from pymongo.database import Database
from typing import Optional

from fitacademy.deps import get_db, get_redis, get_backend
from fitacademy.auth.dependencies import require_admin
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.admin_schema import CouponIn, CouponToggleIn, CouponsOut
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import admin_service

router = APIRouter(prefix="/admin/coupons", tags=["admin"])


@router.get("", response_model=CouponsOut)
async def list_coupons(search: Optional[str] = None,
                       status: str = Query("all", regex="^(all|active|expired)$"),
                       r: Redis = Depends(get_redis),
                       backend: BackendClient = Depends(get_backend),
                       viewer: Viewer = Depends(require_admin)):
    return await admin_service.list_coupons(r, backend, viewer, search=search, status=status)


@router.get("/stats")
async def coupon_stats(r: Redis = Depends(get_redis),
                       backend: BackendClient = Depends(get_backend),
                       viewer: Viewer = Depends(require_admin)):
    return await admin_service.coupon_stats(r, backend, viewer.token)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_coupon(payload: CouponIn,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.create_coupon(db, r, backend, viewer, payload.dict())


@router.put("/{coupon_id}")
async def update_coupon(coupon_id: str, payload: CouponIn,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.update_coupon(db, r, backend, viewer, coupon_id=coupon_id, payload=payload.dict())


@router.patch("/{coupon_id}/active")
async def toggle_coupon(coupon_id: str, payload: CouponToggleIn,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.update_coupon(
        db, r, backend, viewer, coupon_id=coupon_id, payload={"isActive": payload.isActive},
    )


@router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: str,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.delete_coupon(db, r, backend, viewer, coupon_id=coupon_id)
