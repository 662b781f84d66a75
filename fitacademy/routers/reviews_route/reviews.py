from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis.asyncio import Redis
from typing import Optional

from fitacademy.deps import get_redis, get_backend
from fitacademy.auth.dependencies import get_viewer, require_viewer
from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.schemas.review_schema import ReviewIn, VoteIn, ReviewFeedOut
from fitacademy.services import review_service
from fitacademy.services.course_view_service import resolve_enrollment
from fitacademy.services.review_service import AlreadyReviewed, DuplicateVote

router = APIRouter(tags=["reviews"])


async def _enrolled(backend: BackendClient, course_id: str, viewer: Optional[Viewer]) -> bool:
    if viewer is None:
        return False
    if viewer.is_admin:
        return True
    enrolled, _ = await resolve_enrollment(backend, course_ids=[course_id], viewer=viewer, course_flag=None)
    return enrolled


@router.get("/courses/{course_id}/reviews", response_model=ReviewFeedOut)
async def course_reviews(course_id: str,
                         pages: int = Query(1, ge=1, le=review_service.MAX_PAGES, description="Pages loaded so far"),
                         r: Redis = Depends(get_redis),
                         backend: BackendClient = Depends(get_backend),
                         viewer: Optional[Viewer] = Depends(get_viewer)):
    return await review_service.get_feed(
        r, backend, course_id=course_id, pages=pages, viewer=viewer,
        is_enrolled=await _enrolled(backend, course_id, viewer),
    )


@router.post("/courses/{course_id}/reviews", response_model=ReviewFeedOut, status_code=status.HTTP_201_CREATED)
async def create_review(course_id: str, payload: ReviewIn,
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_viewer)):
    try:
        return await review_service.submit_review(
            r, backend, course_id=course_id, rating=payload.rating, title=payload.title,
            comment=payload.comment, viewer=viewer,
            is_enrolled=await _enrolled(backend, course_id, viewer),
        )
    except AlreadyReviewed as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.put("/reviews/{review_id}", response_model=ReviewFeedOut)
async def update_review(review_id: str, payload: ReviewIn,
                        course_id: str = Query(..., min_length=1),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_viewer)):
    return await review_service.submit_review(
        r, backend, course_id=course_id, rating=payload.rating, title=payload.title,
        comment=payload.comment, viewer=viewer, review_id=review_id,
        is_enrolled=await _enrolled(backend, course_id, viewer),
    )


@router.delete("/reviews/{review_id}", response_model=ReviewFeedOut)
async def delete_review(review_id: str,
                        course_id: str = Query(..., min_length=1),
                        r: Redis = Depends(get_redis),
                        backend: BackendClient = Depends(get_backend),
                        viewer: Viewer = Depends(require_viewer)):
    return await review_service.delete_review(
        r, backend, course_id=course_id, review_id=review_id, viewer=viewer,
        is_enrolled=await _enrolled(backend, course_id, viewer),
    )


@router.post("/reviews/{review_id}/vote", response_model=ReviewFeedOut)
async def vote_review(review_id: str, payload: VoteIn,
                      course_id: str = Query(..., min_length=1),
                      r: Redis = Depends(get_redis),
                      backend: BackendClient = Depends(get_backend),
                      viewer: Viewer = Depends(require_viewer)):
    try:
        return await review_service.vote(
            r, backend, course_id=course_id, review_id=review_id, helpful=payload.helpful, viewer=viewer,
            is_enrolled=await _enrolled(backend, course_id, viewer),
        )
    except DuplicateVote as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))
