from fastapi import APIRouter, Depends, status
from redis.asyncio import Redis
from pymongo.database import Database

from fitacademy.deps import get_db, get_redis, get_backend
from fitacademy.auth.dependencies import require_admin
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.admin_schema import LessonIn
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import admin_service

router = APIRouter(prefix="/admin/courses/{course_id}/lessons", tags=["admin"])


@router.get("")
async def list_lessons(course_id: str,
                       backend: BackendClient = Depends(get_backend),
                       viewer: Viewer = Depends(require_admin)):
    return {"lessons": await admin_service.list_lessons(backend, viewer, course_id)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_lesson(course_id: str, payload: LessonIn,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.save_lesson(db, r, backend, viewer, course_id=course_id, payload=payload.dict())


@router.put("/{lesson_id}")
async def update_lesson(course_id: str, lesson_id: str, payload: LessonIn,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.save_lesson(
        db, r, backend, viewer, course_id=course_id, payload=payload.dict(exclude_none=True), lesson_id=lesson_id,
    )


@router.delete("/{lesson_id}")
async def delete_lesson(course_id: str, lesson_id: str,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_admin)):
    return await admin_service.delete_lesson(db, r, backend, viewer, course_id=course_id, lesson_id=lesson_id)
