# services/course_view_service.py
"""
Course detail view: course normalization, enrollment reconciliation, access
decision, progress and the certificate state, computed per viewer.
"""
import logging
from typing import Optional, Dict, Any, List, Tuple
from redis.asyncio import Redis
from pymongo.database import Database

from fitacademy.clients.backend import BackendClient, BackendError, BackendUnavailable
from fitacademy.messages import AR
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import progress_service
from fitacademy.services.cache_keys import course_key
from fitacademy.services.certificate_service import CertificateTracker
from fitacademy.services.memory_cache import read_through, store, invalidate

logger = logging.getLogger(__name__)

COURSE_TTL = 60 * 5

CERTIFICATE_VIEW_STATES = {
    "pending": "certificate_pending",
    "shown": "certificate_shown",
    "unavailable": "certificate_unavailable",
}


class CourseNotFound(ValueError):
    pass


class LessonNotFound(ValueError):
    pass


class AccessDenied(PermissionError):
    pass


# ---------------------------
# Normalization
# ---------------------------

def normalize_lessons(course_id: str, raw_lessons: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    lessons = []
    for index, lesson in enumerate(raw_lessons or []):
        order = lesson.get("order")
        if order is None:
            order = index + 1
        original_id = lesson.get("_id") or lesson.get("id")
        lessons.append({
            "id": str(original_id or f"{course_id}-lesson-{order}"),
            "original_id": str(original_id) if original_id else None,
            "title": lesson.get("title") or AR["untitled_lesson"],
            "description": lesson.get("description"),
            "video_url": lesson.get("videoUrl") or lesson.get("video_url"),
            "duration": int(lesson.get("duration") or 0),
            "order": int(order),
            "is_preview": bool(lesson.get("isFree") or lesson.get("isPreview")),
        })
    # sort is stable, equal orders keep upstream order
    return sorted(lessons, key=lambda l: l["order"])


def normalize_course(course_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    instructor = data.get("instructor") or {}
    if not isinstance(instructor, dict):
        instructor = {"name": str(instructor)}
    rating = data.get("rating") or {}
    return {
        "id": str(data.get("_id") or data.get("id") or course_id),
        "title": data.get("title") or "",
        "title_en": data.get("titleEn"),
        "description": data.get("description") or "",
        "description_en": data.get("descriptionEn"),
        "price": float(data.get("price") or 0),
        "currency": data.get("currency"),
        "level": data.get("level"),
        "category": data.get("category"),
        "thumbnail": data.get("thumbnail") or "",
        "instructor": {
            "name": instructor.get("name") or AR["unknown_instructor"],
            "bio": instructor.get("bio"),
            "avatar": instructor.get("avatar"),
        },
        "rating": {
            "average": float(rating.get("average") or 0),
            "count": int(rating.get("count") or 0),
        },
        "enrollment_count": int(data.get("enrollmentCount") or 0),
        "lessons": normalize_lessons(course_id, data.get("lessons") or []),
    }


async def fetch_course(r: Redis, backend: BackendClient, course_id: str,
                       viewer: Optional[Viewer]) -> Tuple[Dict[str, Any], Optional[bool]]:
    """
    Return (course, enrolled flag from the course payload).

    Anonymous reads go through the shared cache. A viewer's read always hits
    upstream because the payload carries their enrollment flag.
    """
    key = course_key(course_id)

    async def _load() -> Optional[Dict[str, Any]]:
        try:
            data = await backend.get_course(course_id)
        except BackendError as e:
            if e.is_not_found:
                return None
            raise
        return normalize_course(course_id, data)

    if viewer is None:
        course = await read_through(r, key, COURSE_TTL, "course", _load)
        if course is None:
            raise CourseNotFound(AR["course_not_found"])
        return course, None

    try:
        data = await backend.get_course(course_id, token=viewer.token)
    except BackendError as e:
        if e.is_not_found:
            raise CourseNotFound(AR["course_not_found"])
        raise
    course = normalize_course(course_id, data)
    await store(r, key, course, COURSE_TTL)
    flag = data.get("isEnrolled")
    return course, (bool(flag) if flag is not None else None)


async def refresh_course(r: Redis, course_id: str) -> None:
    """Drop the cached course so rating and enrollment count are re-read."""
    await invalidate(r, course_key(course_id))


# ---------------------------
# Enrollment and access
# ---------------------------

def _courses_list(data: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    courses = data.get("courses")
    if courses is None and isinstance(data.get("data"), dict):
        courses = data["data"].get("courses")
    if courses is None and isinstance(data.get("data"), list):
        courses = data["data"]
    return courses


async def resolve_enrollment(backend: BackendClient, *, course_ids: List[str], viewer: Optional[Viewer],
                             course_flag: Optional[bool]) -> Tuple[bool, List[Dict[str, Any]]]:
    """
    Run the enrollment checks in order and return (is_enrolled, trail).

    Stages: the course payload flag, the enrollment endpoint, and, only when
    that fails, the viewer's course list. The last stage that answered wins.
    """
    if viewer is None:
        return False, [{"stage": "course", "is_enrolled": False, "ok": True}]

    enrolled = bool(course_flag)
    trail = [{"stage": "course", "is_enrolled": enrolled, "ok": course_flag is not None}]

    def _settle(stage: str, value: bool) -> None:
        nonlocal enrolled
        if value != enrolled:
            logger.info(f"Enrollment for course {course_ids[0]} changed from {enrolled} to {value} at stage {stage}")
        enrolled = value
        trail.append({"stage": stage, "is_enrolled": value, "ok": True})

    try:
        data = await backend.check_enrollment(course_ids[0], viewer.token)
        if data.get("isEnrolled") is not None:
            _settle("enrollment_check", bool(data["isEnrolled"]))
            return enrolled, trail
        trail.append({"stage": "enrollment_check", "is_enrolled": None, "ok": False})
    except (BackendError, BackendUnavailable) as e:
        logger.warning(f"Enrollment check failed for course {course_ids[0]}, trying course list: {str(e)}")
        trail.append({"stage": "enrollment_check", "is_enrolled": None, "ok": False})

    try:
        courses = _courses_list(await backend.user_courses(viewer.token))
    except (BackendError, BackendUnavailable) as e:
        logger.warning(f"Course list check failed for course {course_ids[0]}: {str(e)}")
        courses = None
    if courses is None:
        trail.append({"stage": "courses_list", "is_enrolled": None, "ok": False})
        return enrolled, trail

    ids = set(course_ids)
    member = any(str(c.get("_id") or c.get("id")) in ids for c in courses if isinstance(c, dict))
    _settle("courses_list", member)
    return enrolled, trail


def access_for(viewer: Optional[Viewer], is_enrolled: bool, trail: List[Dict[str, Any]]) -> Dict[str, Any]:
    is_admin = bool(viewer and viewer.is_admin)
    return {
        "is_enrolled": is_enrolled,
        "is_admin": is_admin,
        "can_access": is_enrolled or is_admin,
        "trail": trail,
    }


def present_lessons(lessons: List[Dict[str, Any]], can_access: bool) -> List[Dict[str, Any]]:
    out = []
    for lesson in lessons:
        open_ = can_access or lesson["is_preview"]
        item = dict(lesson, locked=not open_)
        if not open_:
            item["video_url"] = None
        out.append(item)
    return out


def find_lesson(lessons: List[Dict[str, Any]], lesson_id: str) -> Dict[str, Any]:
    for lesson in lessons:
        if lesson["id"] == lesson_id or lesson.get("original_id") == lesson_id:
            return lesson
    raise LessonNotFound(AR["lesson_not_found"])


def neighbour(lessons: List[Dict[str, Any]], current_id: str, direction: str) -> Optional[Dict[str, Any]]:
    """The lesson one step in `direction`, or None at either end."""
    ids = [l["id"] for l in lessons]
    if current_id not in ids:
        return None
    idx = ids.index(current_id) + (1 if direction == "next" else -1)
    if idx < 0 or idx >= len(lessons):
        return None
    return lessons[idx]


# ---------------------------
# View assembly
# ---------------------------

async def _context(db: Database, r: Redis, backend: BackendClient, course_id: str,
                   viewer: Optional[Viewer]) -> Dict[str, Any]:
    course, flag = await fetch_course(r, backend, course_id, viewer)
    ids = list(dict.fromkeys([course_id, course["id"]]))
    is_enrolled, trail = await resolve_enrollment(backend, course_ids=ids, viewer=viewer, course_flag=flag)
    access = access_for(viewer, is_enrolled, trail)
    progress = await progress_service.load_progress(
        db, backend, course_id=course_id, lessons=course["lessons"], viewer=viewer,
    )
    return {"course": course, "access": access, "progress": progress}


async def _certificate_state(tracker: CertificateTracker, course_id: str, viewer: Optional[Viewer],
                             access: Dict[str, Any], progress: Dict[str, Any]) -> Tuple[str, Optional[Dict[str, Any]]]:
    if not access["can_access"]:
        return "locked", None
    if viewer is None or progress["progress_percentage"] != 100:
        return "unlocked", None
    cert = await tracker.status(viewer.id, course_id)
    if cert["status"] in ("idle", "pending"):
        # start() returns the live state, or restarts an abandoned poll
        cert = await tracker.start(viewer.id, viewer.token, course_id)
    return CERTIFICATE_VIEW_STATES.get(cert["status"], "certificate_pending"), cert


async def _assemble(tracker: CertificateTracker, course_id: str, viewer: Optional[Viewer],
                    ctx: Dict[str, Any], current_id: Optional[str] = None) -> Dict[str, Any]:
    course, access, progress = ctx["course"], ctx["access"], ctx["progress"]
    lessons = present_lessons(course["lessons"], access["can_access"])
    current_id = current_id or progress["current_lesson"]
    current = next((l for l in lessons if l["id"] == current_id), None)
    state, cert = await _certificate_state(tracker, course_id, viewer, access, progress)
    return {
        "course": dict(course, lessons=lessons),
        "access": access,
        "progress": progress,
        "current_lesson": current,
        "state": state,
        "certificate": cert,
    }


async def get_course_view(db: Database, r: Redis, backend: BackendClient, tracker: CertificateTracker, *,
                          course_id: str, viewer: Optional[Viewer]) -> Dict[str, Any]:
    ctx = await _context(db, r, backend, course_id, viewer)
    return await _assemble(tracker, course_id, viewer, ctx)


async def complete_lesson(db: Database, r: Redis, backend: BackendClient, tracker: CertificateTracker, *,
                          course_id: str, lesson_id: str, viewer: Viewer) -> Dict[str, Any]:
    ctx = await _context(db, r, backend, course_id, viewer)
    if not ctx["access"]["can_access"]:
        raise AccessDenied(AR["course_locked"])
    lessons = ctx["course"]["lessons"]
    lesson = find_lesson(lessons, lesson_id)
    ctx["progress"] = await progress_service.mark_complete(
        db, backend, course_id=course_id, lesson=lesson, lessons=lessons,
        progress=ctx["progress"], viewer=viewer,
    )
    return await _assemble(tracker, course_id, viewer, ctx)


async def select_lesson(db: Database, r: Redis, backend: BackendClient, tracker: CertificateTracker, *,
                        course_id: str, lesson_id: str, viewer: Optional[Viewer]) -> Dict[str, Any]:
    ctx = await _context(db, r, backend, course_id, viewer)
    lesson = find_lesson(ctx["course"]["lessons"], lesson_id)
    return await _move_to(db, tracker, course_id, viewer, ctx, lesson)


async def navigate(db: Database, r: Redis, backend: BackendClient, tracker: CertificateTracker, *,
                   course_id: str, direction: str, viewer: Optional[Viewer]) -> Dict[str, Any]:
    ctx = await _context(db, r, backend, course_id, viewer)
    target = neighbour(ctx["course"]["lessons"], ctx["progress"]["current_lesson"], direction)
    if target is None:
        # out of bounds is a no-op
        return await _assemble(tracker, course_id, viewer, ctx)
    return await _move_to(db, tracker, course_id, viewer, ctx, target)


async def _move_to(db: Database, tracker: CertificateTracker, course_id: str, viewer: Optional[Viewer],
                   ctx: Dict[str, Any], lesson: Dict[str, Any]) -> Dict[str, Any]:
    # the pointer is only persisted for viewers who can open the course
    if ctx["access"]["can_access"]:
        await progress_service.save_current_lesson(db, course_id=course_id, lesson_id=lesson["id"], viewer=viewer)
        ctx["progress"] = dict(ctx["progress"], current_lesson=lesson["id"])
    return await _assemble(tracker, course_id, viewer, ctx, current_id=lesson["id"])


# ---------------------------
# Certified-graduate review
# ---------------------------

def certified_review_payload(course_id: str, course_title: str, rating: int, comment: str = "") -> Dict[str, Any]:
    title = f"تقييم خريج: {course_title}"
    if len(title) > 100:
        title = title[:97] + "..."
    if len(title) < 5:
        title = f"تقييم: {course_title}"

    default_comment = f'انتهيت بنجاح من دورة "{course_title}" وأوصي بها للآخرين.'
    comment = (comment or "").strip()
    if len(comment) < 10:
        comment = default_comment
    elif len(comment) > 1000:
        comment = comment[:997] + "..."
    return {"courseId": course_id, "rating": rating, "title": title, "comment": comment}


async def submit_certified_review(r: Redis, backend: BackendClient, *, course_id: str, rating: int,
                                  comment: str, viewer: Viewer) -> Dict[str, Any]:
    course, _ = await fetch_course(r, backend, course_id, viewer)
    payload = certified_review_payload(course["id"], course["title"], rating, comment)
    data = await backend.create_review(viewer.token, payload)
    await refresh_course(r, course_id)
    return data.get("review") or (data.get("data") or {}).get("review") or payload
