from pydantic import BaseModel
from typing import List, Literal, Optional


class CourseProgressOut(BaseModel):
    completed_lessons: List[str] = []
    current_lesson: str = ""
    progress_percentage: int = 0
    source: Literal["backend", "local", "default"] = "default"
    synced: Optional[bool] = None


class Certificate(BaseModel):
    user_name: Optional[str] = None
    course_title: Optional[str] = None
    issued_at: Optional[str] = None
    verification_code: Optional[str] = None
    certificate_url: Optional[str] = None


class CertificateStatusOut(BaseModel):
    status: Literal["idle", "pending", "shown", "unavailable"] = "idle"
    certificate: Optional[Certificate] = None
    attempts: int = 0
