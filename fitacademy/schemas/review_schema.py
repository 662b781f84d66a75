from pydantic import BaseModel, Field, constr
from typing import Dict, List, Optional


class ReviewIn(BaseModel):
    # rating=0 is the "nothing selected" state and is rejected
    rating: int = Field(..., ge=1, le=5)
    title: constr(strip_whitespace=True, min_length=5, max_length=100)
    comment: constr(strip_whitespace=True, min_length=10, max_length=1000)


class VoteIn(BaseModel):
    helpful: bool


class ReviewOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_avatar: Optional[str] = None
    rating: int
    title: str = ""
    comment: str = ""
    is_verified: bool = False
    helpful_votes: int = 0
    total_votes: int = 0
    helpful_percentage: int = 0
    created_at: Optional[str] = None


class RatingStats(BaseModel):
    total_reviews: int = 0
    average_rating: float = 0.0
    rating_distribution: Dict[int, int] = {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}


class ReviewFeedOut(BaseModel):
    reviews: List[ReviewOut] = []
    rating_stats: RatingStats = RatingStats()
    pages_loaded: int = 0
    has_more: bool = False
    user_review: Optional[ReviewOut] = None
    can_write_review: bool = False
