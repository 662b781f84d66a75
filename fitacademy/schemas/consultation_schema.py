from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Literal, Optional


class UserDetails(BaseModel):
    age: Optional[int] = Field(default=None, ge=1, le=120)
    gender: Optional[str] = None
    weight: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    fitnessLevel: Optional[str] = None
    medicalConditions: Optional[str] = None
    currentActivity: Optional[str] = None
    goals: List[str] = []
    dietaryRestrictions: Optional[str] = None
    injuries: Optional[str] = None
    medications: Optional[str] = None
    additionalNotes: Optional[str] = None


class BookingIn(BaseModel):
    consultationId: str = Field(..., min_length=1)
    preferredDate: str = Field(..., min_length=1)
    preferredTime: str = Field(..., min_length=1)
    alternativeDate: Optional[str] = None
    alternativeTime: Optional[str] = None
    meetingType: Literal["online", "in_person"]
    userDetails: UserDetails = UserDetails()

    @validator("alternativeDate", "alternativeTime")
    def blank_to_none(cls, v):
        return v or None


class BookingOut(BaseModel):
    booking: Dict[str, Any]
    payment_required: bool = False
    next_step: str
    message: str
