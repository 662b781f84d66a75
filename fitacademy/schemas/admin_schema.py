from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Literal, Optional, Union

OrderStatus = Literal["pending", "processing", "completed", "failed", "refunded"]
BookingStatus = Literal[
    "pending_payment", "pending_confirmation", "confirmed", "completed", "cancelled", "rescheduled", "no_show",
]
Period = Literal["7d", "30d", "90d", "1y"]


class OrderStatusIn(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class OrderStats(BaseModel):
    total_revenue: float = 0.0
    total_orders: int = 0
    completed_orders: int = 0
    pending_orders: int = 0
    failed_orders: int = 0
    pending_bank_transfers: int = 0


class OrdersOut(BaseModel):
    orders: List[Dict[str, Any]] = []
    pagination: Dict[str, Any] = {}
    stats: OrderStats = OrderStats()
    new_orders: int = 0
    fetched_at: Optional[str] = None


class CouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    discountType: Literal["percentage", "fixed"] = "percentage"
    discountValue: float = Field(..., gt=0)
    maxUses: Optional[Union[int, str]] = None
    validUntil: Optional[str] = None
    applicableTo: Literal["all", "courses", "consultations", "specific"] = "all"
    minPurchaseAmount: float = Field(default=0, ge=0)
    isActive: bool = True

    @validator("code")
    def upper_code(cls, v):
        return v.strip().upper()

    @validator("maxUses")
    def parse_max_uses(cls, v):
        # the form sends "" for "unlimited"
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        value = int(v)
        if value < 1:
            raise ValueError("maxUses must be positive")
        return value

    @validator("discountValue")
    def percentage_cap(cls, v, values):
        if values.get("discountType") == "percentage" and v > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return v


class CouponToggleIn(BaseModel):
    isActive: bool


class CouponsOut(BaseModel):
    coupons: List[Dict[str, Any]] = []
    stats: Dict[str, Any] = {}


class LessonIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    videoUrl: str = ""
    duration: int = Field(default=0, ge=0)
    order: Optional[int] = Field(default=None, ge=1)
    isFree: bool = False


class UserUpdateIn(BaseModel):
    displayName: Optional[str] = None
    role: Optional[Literal["user", "admin"]] = None
    isActive: Optional[bool] = None
    phone: Optional[str] = None


class NotesIn(BaseModel):
    notes: str = Field(default="", max_length=5000)


class BookingStatusIn(BaseModel):
    status: BookingStatus
    adminNotes: Optional[str] = None
    meetingLink: Optional[str] = None


class BookingStats(BaseModel):
    total: int = 0
    pending_confirmation: int = 0
    confirmed: int = 0
    completed: int = 0
    revenue: float = 0.0


class BookingsOut(BaseModel):
    bookings: List[Dict[str, Any]] = []
    stats: BookingStats = BookingStats()


class AnalyticsMetrics(BaseModel):
    total_revenue: float = 0.0
    total_students: int = 0
    total_courses: int = 0
    avg_revenue_per_student: float = 0.0
    revenue_growth: int = 0
    student_growth: int = 0
    course_growth: int = 0


class AnalyticsOut(BaseModel):
    period: Period
    period_label: str
    metrics: AnalyticsMetrics
    analytics: Dict[str, Any] = {}
    generated_at: Optional[str] = None
