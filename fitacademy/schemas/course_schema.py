from pydantic import BaseModel, Field
from typing import List, Optional, Literal

from fitacademy.schemas.progress_schema import CourseProgressOut, CertificateStatusOut

class Rating(BaseModel):
    average: float = 0.0
    count: int = 0

class Instructor(BaseModel):
    name: str
    bio: Optional[str] = None
    avatar: Optional[str] = None

class LessonOut(BaseModel):
    id: str
    original_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    video_url: Optional[str] = None
    duration: int = 0
    order: int
    is_preview: bool = False
    locked: bool = False

class CourseOut(BaseModel):
    id: str
    title: str
    title_en: Optional[str] = None
    description: str = ""
    description_en: Optional[str] = None
    price: float = 0.0
    currency: Optional[str] = None
    level: Optional[str] = None
    category: Optional[str] = None
    thumbnail: str = ""
    instructor: Instructor
    rating: Rating = Rating()
    enrollment_count: int = 0
    lessons: List[LessonOut] = []

class EnrollmentStageOut(BaseModel):
    stage: Literal["course", "enrollment_check", "courses_list"]
    is_enrolled: Optional[bool] = None
    ok: bool = True

class AccessOut(BaseModel):
    is_enrolled: bool = False
    is_admin: bool = False
    can_access: bool = False
    trail: List[EnrollmentStageOut] = []

ViewState = Literal["locked", "unlocked", "certificate_pending", "certificate_shown", "certificate_unavailable"]

class CourseViewOut(BaseModel):
    course: CourseOut
    access: AccessOut
    progress: CourseProgressOut
    current_lesson: Optional[LessonOut] = None
    state: ViewState = "locked"
    certificate: Optional[CertificateStatusOut] = None

class NavigateIn(BaseModel):
    direction: Literal["next", "prev"]

class CertifiedReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
