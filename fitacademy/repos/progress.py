# repos/progress.py
"""
Server-side mirror of a viewer's course progress.

Documents are keyed by the same string the browser used for its local copy
(`course_progress_{courseId}_{userId|guest}`). Completions only ever grow;
the current-lesson pointer is last-writer-wins on `current_lesson_at`.
"""
from typing import Dict, Any, Optional, List
from datetime import datetime
from pymongo.database import Database
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

COLLECTION = "progress_mirror"


def ensure_indexes(db: Database) -> None:
    db[COLLECTION].create_index([("key", ASCENDING)], unique=True, name="mirror_key_unique")
    db[COLLECTION].create_index([("user_id", ASCENDING), ("updated_at", DESCENDING)], name="user_updated")


def _ensure_doc(db: Database, *, key: str, course_id: str, user_id: Optional[str], ts: datetime) -> None:
    try:
        db[COLLECTION].update_one(
            {"key": key},
            {"$setOnInsert": {
                "course_id": course_id,
                "user_id": user_id,
                "completed_lessons": [],
                "current_lesson": "",
                "current_lesson_at": None,
                "created_at": ts,
            }},
            upsert=True,
        )
    except DuplicateKeyError:
        # lost an upsert race; the document exists now
        pass


def get_mirror(db: Database, key: str) -> Optional[Dict[str, Any]]:
    doc = db[COLLECTION].find_one({"key": key})
    if not doc:
        return None
    doc.pop("_id", None)
    return doc


def add_completions(db: Database, *, key: str, course_id: str, user_id: Optional[str],
                    lesson_ids: List[str], ts: datetime) -> Dict[str, Any]:
    _ensure_doc(db, key=key, course_id=course_id, user_id=user_id, ts=ts)
    if lesson_ids:
        db[COLLECTION].update_one(
            {"key": key},
            {"$addToSet": {"completed_lessons": {"$each": list(lesson_ids)}}, "$set": {"updated_at": ts}},
        )
    return get_mirror(db, key)


def set_current_lesson(db: Database, *, key: str, course_id: str, user_id: Optional[str],
                       lesson_id: str, ts: datetime) -> Dict[str, Any]:
    _ensure_doc(db, key=key, course_id=course_id, user_id=user_id, ts=ts)
    # older writes lose
    db[COLLECTION].update_one(
        {"key": key, "$or": [{"current_lesson_at": None}, {"current_lesson_at": {"$lte": ts}}]},
        {"$set": {"current_lesson": lesson_id, "current_lesson_at": ts, "updated_at": ts}},
    )
    return get_mirror(db, key)

