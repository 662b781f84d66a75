# services/review_service.py
import logging
from typing import Optional, Dict, Any, List
from redis.asyncio import Redis

from fitacademy.clients.backend import BackendClient
from fitacademy.messages import AR
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services.cache_keys import reviews_page_key, reviews_prefix, vote_lock_key
from fitacademy.services.course_view_service import refresh_course
from fitacademy.services.memory_cache import read_through, invalidate_prefix

logger = logging.getLogger(__name__)

PAGE_LIMIT = 5
REVIEWS_TTL = 60
VOTE_WINDOW_SECONDS = 3
MAX_PAGES = 20


class AlreadyReviewed(ValueError):
    pass


class DuplicateVote(ValueError):
    pass


def normalize_review(raw: Dict[str, Any]) -> Dict[str, Any]:
    user = raw.get("userId")
    if isinstance(user, dict):
        user_id = user.get("_id") or user.get("id")
        user_name = user.get("displayName") or user.get("name")
        avatar = user.get("avatar")
    else:
        user_id, user_name, avatar = user, raw.get("userName"), None
    return {
        "id": str(raw.get("_id") or raw.get("id")),
        "user_id": str(user_id) if user_id else None,
        "user_name": user_name,
        "user_avatar": avatar,
        "rating": int(raw.get("rating") or 0),
        "title": raw.get("title") or "",
        "comment": raw.get("comment") or "",
        "is_verified": bool(raw.get("isVerified")),
        "helpful_votes": int(raw.get("helpfulVotes") or 0),
        "total_votes": int(raw.get("totalVotes") or 0),
        "helpful_percentage": int(raw.get("helpfulPercentage") or 0),
        "created_at": raw.get("createdAt"),
    }


def normalize_stats(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    raw = raw or {}
    dist = raw.get("ratingDistribution") or {}
    return {
        "total_reviews": int(raw.get("totalReviews") or 0),
        "average_rating": float(raw.get("averageRating") or 0),
        "rating_distribution": {star: int(dist.get(str(star), dist.get(star, 0)) or 0) for star in range(1, 6)},
    }


async def fetch_page(r: Redis, backend: BackendClient, course_id: str, page: int) -> Dict[str, Any]:
    async def _load():
        data = await backend.course_reviews(course_id, page=page, limit=PAGE_LIMIT)
        pagination = data.get("pagination") or {}
        return {
            "reviews": [normalize_review(x) for x in data.get("reviews") or []],
            "rating_stats": normalize_stats(data.get("ratingStats")),
            "has_more": bool(pagination.get("hasNextPage")),
        }

    return await read_through(r, reviews_page_key(course_id, page, PAGE_LIMIT), REVIEWS_TTL, "reviews", _load)


def find_user_review(reviews: List[Dict[str, Any]], user_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    return next((rv for rv in reviews if rv["user_id"] == user_id), None)


async def get_feed(r: Redis, backend: BackendClient, *, course_id: str, pages: int = 1,
                   viewer: Optional[Viewer] = None, is_enrolled: bool = False) -> Dict[str, Any]:
    """
    Pages 1..`pages` appended in order, with the stats of the last page read.

    The viewer's own review is only found if it sits on a loaded page.
    """
    pages = max(1, min(pages, MAX_PAGES))
    reviews: List[Dict[str, Any]] = []
    stats = normalize_stats(None)
    has_more = False
    loaded = 0
    for page in range(1, pages + 1):
        chunk = await fetch_page(r, backend, course_id, page)
        reviews.extend(chunk["reviews"])
        stats = chunk["rating_stats"]
        has_more = chunk["has_more"]
        loaded = page
        if not has_more:
            break

    user_review = find_user_review(reviews, viewer.id if viewer else None)
    return {
        "reviews": reviews,
        "rating_stats": stats,
        "pages_loaded": loaded,
        "has_more": has_more,
        "user_review": user_review,
        "can_write_review": bool(viewer) and is_enrolled and user_review is None,
    }


async def _after_change(r: Redis, course_id: str) -> None:
    await invalidate_prefix(r, reviews_prefix(course_id))
    await refresh_course(r, course_id)


async def submit_review(r: Redis, backend: BackendClient, *, course_id: str, rating: int, title: str,
                        comment: str, viewer: Viewer, review_id: Optional[str] = None,
                        is_enrolled: bool = False) -> Dict[str, Any]:
    """Create, or edit when `review_id` is given, then reload the first page."""
    payload = {"courseId": course_id, "rating": rating, "title": title, "comment": comment}
    if review_id:
        await backend.update_review(viewer.token, review_id, payload)
    else:
        current = await get_feed(r, backend, course_id=course_id, viewer=viewer)
        if current["user_review"] is not None:
            raise AlreadyReviewed(AR["already_reviewed"])
        await backend.create_review(viewer.token, payload)
    logger.info(f"Review {'updated' if review_id else 'created'} for course {course_id} by user {viewer.id}")
    await _after_change(r, course_id)
    return await get_feed(r, backend, course_id=course_id, viewer=viewer, is_enrolled=is_enrolled)


async def delete_review(r: Redis, backend: BackendClient, *, course_id: str, review_id: str,
                        viewer: Viewer, is_enrolled: bool = False) -> Dict[str, Any]:
    await backend.delete_review(viewer.token, review_id)
    logger.info(f"Review {review_id} deleted by user {viewer.id}")
    await _after_change(r, course_id)
    return await get_feed(r, backend, course_id=course_id, viewer=viewer, is_enrolled=is_enrolled)


async def vote(r: Redis, backend: BackendClient, *, course_id: str, review_id: str, helpful: bool,
               viewer: Viewer, is_enrolled: bool = False) -> Dict[str, Any]:
    """Record a vote and reload page 1; tallies always come from upstream."""
    acquired = await r.set(vote_lock_key(viewer.id, review_id), "1", nx=True, ex=VOTE_WINDOW_SECONDS)
    if not acquired:
        raise DuplicateVote(AR["vote_too_fast"])
    await backend.vote_review(viewer.token, review_id, helpful)
    await invalidate_prefix(r, reviews_prefix(course_id))
    return await get_feed(r, backend, course_id=course_id, viewer=viewer, is_enrolled=is_enrolled)
