from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from pymongo.database import Database
from typing import Optional

from fitacademy.deps import get_db, get_redis, get_backend
from fitacademy.auth.dependencies import require_admin
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.admin_schema import OrdersOut, OrderStatusIn
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import admin_service

router = APIRouter(prefix="/admin/orders", tags=["admin"])

_defaults = admin_service.DEFAULT_ORDER_PARAMS


@router.get("", response_model=OrdersOut)
async def list_orders(page: int = Query(_defaults["page"], ge=1),
                      limit: int = Query(_defaults["limit"], ge=1, le=100),
                      search: Optional[str] = None,
                      status: Optional[str] = Query(None, regex="^(all|pending|processing|completed|failed|refunded)$"),
                      dateFrom: Optional[str] = None,
                      dateTo: Optional[str] = None,
                      sortBy: str = Query(_defaults["sortBy"]),
                      sortOrder: str = Query(_defaults["sortOrder"], regex="^(asc|desc)$"),
                      r: Redis = Depends(get_redis),
                      backend: BackendClient = Depends(get_backend),
                      viewer: Viewer = Depends(require_admin)):
    params = {
        "page": page, "limit": limit, "search": search, "status": status,
        "dateFrom": dateFrom, "dateTo": dateTo, "sortBy": sortBy, "sortOrder": sortOrder,
    }
    return await admin_service.list_orders(r, backend, viewer, params)


@router.put("/{order_id}")
async def update_order(order_id: str, payload: OrderStatusIn,
                       db: Database = Depends(get_db),
                       r: Redis = Depends(get_redis),
                       backend: BackendClient = Depends(get_backend),
                       viewer: Viewer = Depends(require_admin)):
    return await admin_service.update_order_status(
        db, r, backend, viewer, order_id=order_id, status=payload.status, notes=payload.notes,
    )
