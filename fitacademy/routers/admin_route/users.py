from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from pymongo.database import Database
from typing import Optional

from fitacademy.deps import get_db, get_redis, get_backend
from fitacademy.auth.dependencies import require_admin
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.admin_schema import UserUpdateIn, NotesIn
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import admin_service

router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.get("")
async def list_users(page: int = Query(1, ge=1),
                     limit: int = Query(20, ge=1, le=100),
                     search: Optional[str] = None,
                     status: Optional[str] = Query(None, regex="^(all|active|inactive)$"),
                     sort_by: Optional[str] = None,
                     sort_order: str = Query("desc", regex="^(asc|desc)$"),
                     backend: BackendClient = Depends(get_backend),
                     viewer: Viewer = Depends(require_admin)):
    return await admin_service.list_users(
        backend, viewer, page=page, limit=limit, search=search,
        status=None if status == "all" else status, sort_by=sort_by, sort_order=sort_order,
    )


@router.put("/{user_id}")
async def update_user(user_id: str, payload: UserUpdateIn,
                      db: Database = Depends(get_db),
                      backend: BackendClient = Depends(get_backend),
                      viewer: Viewer = Depends(require_admin)):
    return {"user": await admin_service.update_user(db, backend, viewer, user_id=user_id,
                                                    payload=payload.dict(exclude_none=True))}


@router.put("/{user_id}/notes")
async def update_notes(user_id: str, payload: NotesIn,
                       db: Database = Depends(get_db),
                       backend: BackendClient = Depends(get_backend),
                       viewer: Viewer = Depends(require_admin)):
    return await admin_service.update_user_notes(db, backend, viewer, user_id=user_id, notes=payload.notes)


@router.post("/{user_id}/enroll/{course_id}")
async def enroll(user_id: str, course_id: str,
                 db: Database = Depends(get_db),
                 r: Redis = Depends(get_redis),
                 backend: BackendClient = Depends(get_backend),
                 viewer: Viewer = Depends(require_admin)):
    return await admin_service.set_enrollment(db, r, backend, viewer, user_id=user_id, course_id=course_id, enrolled=True)


@router.delete("/{user_id}/enroll/{course_id}")
async def unenroll(user_id: str, course_id: str,
                   db: Database = Depends(get_db),
                   r: Redis = Depends(get_redis),
                   backend: BackendClient = Depends(get_backend),
                   viewer: Viewer = Depends(require_admin)):
    return await admin_service.set_enrollment(db, r, backend, viewer, user_id=user_id, course_id=course_id, enrolled=False)
