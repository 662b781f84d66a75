# services/progress_service.py
import logging
import math
from typing import Optional, Dict, Any, List, Iterable
from datetime import datetime
from pymongo.database import Database
from fastapi.concurrency import run_in_threadpool

from fitacademy.clients.backend import BackendClient, BackendError, BackendUnavailable
from fitacademy.repos import progress as repo
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services.cache_keys import local_progress_key

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    # JS Math.round semantics, Python's round() is banker's rounding
    return int(math.floor(value + 0.5))


def completion_percentage(completed: Iterable[str], lessons: List[Dict[str, Any]]) -> int:
    total = len(lessons)
    if total == 0:
        return 0
    known = {l["id"] for l in lessons}
    done = len(set(completed) & known)
    return min(100, round_half_up(done / total * 100))


def build_progress(completed: Iterable[str], current: str, lessons: List[Dict[str, Any]],
                   source: str, synced: Optional[bool] = None) -> Dict[str, Any]:
    completed = list(dict.fromkeys(completed))
    known = {l["id"] for l in lessons}
    if current not in known:
        current = lessons[0]["id"] if lessons else ""
    return {
        "completed_lessons": completed,
        "current_lesson": current,
        "progress_percentage": completion_percentage(completed, lessons),
        "source": source,
        "synced": synced,
    }


def _mirror_key(course_id: str, viewer: Optional[Viewer]) -> str:
    return local_progress_key(course_id, viewer.id if viewer else None)


def _records(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    for field in ("progress", "data", "lessons"):
        value = data.get(field)
        if isinstance(value, list):
            return value
        if isinstance(value, dict) and isinstance(value.get("progress"), list):
            return value["progress"]
    return []


def _record_lesson_id(record: Dict[str, Any]) -> Optional[str]:
    raw = record.get("lessonId") or record.get("lesson_id")
    if isinstance(raw, dict):
        raw = raw.get("_id") or raw.get("id")
    return str(raw) if raw else None


def translate_backend_ids(records: List[Dict[str, Any]], lessons: List[Dict[str, Any]]) -> List[str]:
    """Map upstream lesson ids back to the ids used in the course view."""
    by_original = {l["original_id"]: l["id"] for l in lessons if l.get("original_id")}
    completed = []
    for record in records:
        if not record.get("completed"):
            continue
        backend_id = _record_lesson_id(record)
        if not backend_id:
            continue
        # ids that do not map are kept; they are not counted in the percentage
        completed.append(by_original.get(backend_id, backend_id))
    return list(dict.fromkeys(completed))


async def load_progress(db: Database, backend: BackendClient, *, course_id: str,
                        lessons: List[Dict[str, Any]], viewer: Optional[Viewer]) -> Dict[str, Any]:
    key = _mirror_key(course_id, viewer)
    mirror = await run_in_threadpool(repo.get_mirror, db, key)
    mirror_current = (mirror or {}).get("current_lesson") or ""

    if viewer:
        try:
            data = await backend.lesson_progress(course_id, viewer.token)
        except (BackendError, BackendUnavailable) as e:
            logger.warning(f"Progress load failed for course {course_id}, using local mirror: {str(e)}")
        else:
            completed = translate_backend_ids(_records(data), lessons)
            now = datetime.utcnow()
            await run_in_threadpool(
                repo.add_completions, db,
                key=key, course_id=course_id, user_id=viewer.id, lesson_ids=completed, ts=now,
            )
            return build_progress(completed, mirror_current, lessons, source="backend", synced=True)

    if mirror:
        return build_progress(mirror.get("completed_lessons") or [], mirror_current, lessons, source="local")
    return build_progress([], "", lessons, source="default")


async def mark_complete(db: Database, backend: BackendClient, *, course_id: str, lesson: Dict[str, Any],
                        lessons: List[Dict[str, Any]], progress: Dict[str, Any],
                        viewer: Optional[Viewer]) -> Dict[str, Any]:
    """
    Add `lesson` to the completion set and persist it.

    The returned progress is computed before any write. The upstream POST is
    attempted once; the mirror is written whatever its outcome.
    """
    completed = list(progress.get("completed_lessons") or [])
    if lesson["id"] not in completed:
        completed.append(lesson["id"])
    synced = None

    if viewer:
        payload = {
            "courseId": course_id,
            "lessonId": lesson.get("original_id") or lesson["id"],
            "watchTime": 0,
            "totalDuration": 0,
            "completed": True,
        }
        try:
            await backend.save_lesson_progress(viewer.token, payload)
            synced = True
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Failed to save progress for lesson {lesson['id']} in course {course_id}: {str(e)}")
            synced = False

    now = datetime.utcnow()
    key = _mirror_key(course_id, viewer)
    user_id = viewer.id if viewer else None
    await run_in_threadpool(
        repo.add_completions, db,
        key=key, course_id=course_id, user_id=user_id, lesson_ids=[lesson["id"]], ts=now,
    )
    await run_in_threadpool(
        repo.set_current_lesson, db,
        key=key, course_id=course_id, user_id=user_id, lesson_id=lesson["id"], ts=now,
    )
    return build_progress(completed, lesson["id"], lessons, source=progress.get("source") or "local", synced=synced)


async def save_current_lesson(db: Database, *, course_id: str, lesson_id: str,
                              viewer: Optional[Viewer], at: Optional[datetime] = None) -> Dict[str, Any]:
    return await run_in_threadpool(
        repo.set_current_lesson, db,
        key=_mirror_key(course_id, viewer), course_id=course_id,
        user_id=viewer.id if viewer else None, lesson_id=lesson_id,
        ts=at or datetime.utcnow(),
    )
