from fastapi import APIRouter, Depends, HTTPException, status
from redis.asyncio import Redis
from pymongo.database import Database
from typing import Optional

from fitacademy.deps import get_db, get_redis, get_backend, get_certificates
from fitacademy.auth.dependencies import get_viewer, require_viewer
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.schemas.course_schema import CourseViewOut, NavigateIn, CertifiedReviewIn
from fitacademy.schemas.progress_schema import CertificateStatusOut
from fitacademy.services import course_view_service
from fitacademy.services.course_view_service import CourseNotFound, LessonNotFound, AccessDenied
from fitacademy.services.certificate_service import CertificateTracker

router = APIRouter(prefix="/courses", tags=["courses"])


def _translate(exc: Exception) -> HTTPException:
    if isinstance(exc, (CourseNotFound, LessonNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


@router.get("/{course_id}", response_model=CourseViewOut)
async def course_view(course_id: str,
                      db: Database = Depends(get_db),
                      r: Redis = Depends(get_redis),
                      backend: BackendClient = Depends(get_backend),
                      tracker: CertificateTracker = Depends(get_certificates),
                      viewer: Optional[Viewer] = Depends(get_viewer)):
    """
    Course detail for the current viewer.

    Lesson videos are withheld unless the viewer is enrolled, is an admin,
    or the lesson is a free preview.
    """
    try:
        return await course_view_service.get_course_view(
            db, r, backend, tracker, course_id=course_id, viewer=viewer,
        )
    except (CourseNotFound, LessonNotFound, AccessDenied) as e:
        raise _translate(e)


@router.post("/{course_id}/lessons/{lesson_id}/complete", response_model=CourseViewOut)
async def complete_lesson(course_id: str, lesson_id: str,
                          db: Database = Depends(get_db),
                          r: Redis = Depends(get_redis),
                          backend: BackendClient = Depends(get_backend),
                          tracker: CertificateTracker = Depends(get_certificates),
                          viewer: Viewer = Depends(require_viewer)):
    try:
        return await course_view_service.complete_lesson(
            db, r, backend, tracker, course_id=course_id, lesson_id=lesson_id, viewer=viewer,
        )
    except (CourseNotFound, LessonNotFound, AccessDenied) as e:
        raise _translate(e)


@router.post("/{course_id}/lessons/{lesson_id}/select", response_model=CourseViewOut)
async def select_lesson(course_id: str, lesson_id: str,
                        db: Database = Depends(get_db),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        tracker: CertificateTracker = Depends(get_certificates),
                        viewer: Optional[Viewer] = Depends(get_viewer)):
    try:
        return await course_view_service.select_lesson(
            db, r, backend, tracker, course_id=course_id, lesson_id=lesson_id, viewer=viewer,
        )
    except (CourseNotFound, LessonNotFound, AccessDenied) as e:
        raise _translate(e)


@router.post("/{course_id}/navigate", response_model=CourseViewOut)
async def navigate(course_id: str, payload: NavigateIn,
                   db: Database = Depends(get_db),
                   r: Redis = Depends(get_redis),
                   backend: BackendClient = Depends(get_backend),
                   tracker: CertificateTracker = Depends(get_certificates),
                   viewer: Optional[Viewer] = Depends(get_viewer)):
    try:
        return await course_view_service.navigate(
            db, r, backend, tracker, course_id=course_id, direction=payload.direction, viewer=viewer,
        )
    except (CourseNotFound, LessonNotFound, AccessDenied) as e:
        raise _translate(e)


@router.get("/{course_id}/certificate", response_model=CertificateStatusOut)
async def certificate_status(course_id: str,
                             tracker: CertificateTracker = Depends(get_certificates),
                             viewer: Viewer = Depends(require_viewer)):
    return await tracker.status(viewer.id, course_id)


@router.delete("/{course_id}/certificate", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_certificate_poll(course_id: str,
                                  tracker: CertificateTracker = Depends(get_certificates),
                                  viewer: Viewer = Depends(require_viewer)):
    await tracker.cancel(viewer.id, course_id)


@router.post("/{course_id}/certified-review", status_code=status.HTTP_201_CREATED)
async def certified_review(course_id: str, payload: CertifiedReviewIn,
                           r: Redis = Depends(get_redis),
                           backend: BackendClient = Depends(get_backend),
                           viewer: Viewer = Depends(require_viewer)):
    try:
        review = await course_view_service.submit_certified_review(
            r, backend, course_id=course_id, rating=payload.rating, comment=payload.comment, viewer=viewer,
        )
    except CourseNotFound as e:
        raise _translate(e)
    return {"review": review}
