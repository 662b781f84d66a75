# services/listing.py
"""
Filter and sort helpers for admin list views.

These run over the page already fetched from upstream. Date fields compare
as timestamps, numeric fields as numbers, everything else as lower-cased text.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

DATE_FIELDS = {"createdAt", "updatedAt", "validFrom", "validUntil", "preferredDate", "lastLoginAt"}
NUMERIC_FIELDS = {"amount", "price", "discountValue", "maxUses", "usedCount", "totalSpent", "order", "duration"}


def parse_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def sort_key(field: str):
    def key(record: Dict[str, Any]):
        value = record.get(field)
        if field in DATE_FIELDS:
            dt = parse_date(value)
            return dt.timestamp() if dt else 0.0
        if field in NUMERIC_FIELDS:
            return _number(value)
        return str(value or "").lower()
    return key


def sort_records(records: Iterable[Dict[str, Any]], field: Optional[str], order: str = "desc") -> List[Dict[str, Any]]:
    records = list(records)
    if not field:
        return records
    return sorted(records, key=sort_key(field), reverse=(order != "asc"))


def text_match(record: Dict[str, Any], term: Optional[str], fields: Sequence[str]) -> bool:
    if not term:
        return True
    needle = term.strip().lower()
    return any(needle in str(record.get(f) or "").lower() for f in fields)


def in_date_range(value: Any, start: Optional[str], end: Optional[str]) -> bool:
    """Inclusive at both ends. A bare end date covers that whole day."""
    if not start and not end:
        return True
    dt = parse_date(value)
    if dt is None:
        return False
    lo = parse_date(start)
    hi = parse_date(end)
    if hi is not None and end and len(str(end)) == 10:
        hi = hi + timedelta(days=1) - timedelta(microseconds=1)
    return (lo is None or dt >= lo) and (hi is None or dt <= hi)


def _ref(value: Any, *fields: str) -> Any:
    if isinstance(value, dict):
        for f in fields:
            if value.get(f):
                return value[f]
        return None
    return value


# ---------------------------
# Orders
# ---------------------------

ORDER_SEARCH_FIELDS = ("id", "userEmail", "userName", "courseTitle", "consultationTitle", "consultationBookingNumber")


def sanitize_order(order: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten populated references so every field is a scalar."""
    user = order.get("userId")
    course = order.get("courseId")
    booking = order.get("consultationBookingId")
    user_obj = user if isinstance(user, dict) else {}
    course_obj = course if isinstance(course, dict) else {}
    booking_obj = booking if isinstance(booking, dict) else {}
    consultation = booking_obj.get("consultationId") if isinstance(booking_obj.get("consultationId"), dict) else {}

    if course:
        order_type = "course"
    elif booking:
        order_type = "consultation"
    else:
        order_type = None

    return {
        **order,
        "id": str(order.get("_id") or order.get("id") or ""),
        "userId": _ref(user, "_id", "id"),
        "courseId": _ref(course, "_id", "id"),
        "consultationBookingId": _ref(booking, "_id", "id"),
        "userEmail": order.get("userEmail") or user_obj.get("email") or "",
        "userName": order.get("userName") or user_obj.get("displayName") or "",
        "courseTitle": order.get("courseTitle") or course_obj.get("title") or "",
        "courseThumbnail": order.get("courseThumbnail") or course_obj.get("thumbnail") or "",
        "consultationTitle": order.get("consultationTitle") or consultation.get("title") or "",
        "consultationBookingNumber": order.get("consultationBookingNumber") or booking_obj.get("bookingNumber") or "",
        "orderType": order_type,
    }


def filter_orders(orders: Iterable[Dict[str, Any]], *, search: Optional[str] = None, status: Optional[str] = None,
                  date_from: Optional[str] = None, date_to: Optional[str] = None) -> List[Dict[str, Any]]:
    out = []
    for order in orders:
        if status and status != "all" and order.get("status") != status:
            continue
        if not text_match(order, search, ORDER_SEARCH_FIELDS):
            continue
        if not in_date_range(order.get("createdAt"), date_from, date_to):
            continue
        out.append(order)
    return out


def order_stats(orders: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    completed = [o for o in orders if o.get("status") == "completed"]
    return {
        "total_revenue": sum(_number(o.get("amount")) for o in completed),
        "total_orders": len(orders),
        "completed_orders": len(completed),
        "pending_orders": sum(1 for o in orders if o.get("status") == "pending"),
        "failed_orders": sum(1 for o in orders if o.get("status") == "failed"),
        "pending_bank_transfers": sum(
            1 for o in orders
            if o.get("paymentMethod") == "bank_transfer"
            and (o.get("bankTransfer") or {}).get("verificationStatus") == "pending"
        ),
    }


def recent(records: Iterable[Dict[str, Any]], *, within: timedelta, now: Optional[datetime] = None,
           field: str = "createdAt") -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    cutoff = now - within
    out = []
    for rec in records:
        dt = parse_date(rec.get(field))
        if dt is not None and dt > cutoff:
            out.append(rec)
    return out


# ---------------------------
# Coupons
# ---------------------------

def coupon_expired(coupon: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    until = parse_date(coupon.get("validUntil"))
    return until is not None and until < (now or datetime.now(timezone.utc))


def filter_coupons(coupons: Iterable[Dict[str, Any]], *, search: Optional[str] = None, status: str = "all",
                   now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    out = []
    for coupon in coupons:
        if not text_match(coupon, search, ("code",)):
            continue
        expired = coupon_expired(coupon, now)
        if status == "active" and (not coupon.get("isActive") or expired):
            continue
        # inactive coupons are listed with the expired ones
        if status == "expired" and coupon.get("isActive") and not expired:
            continue
        out.append(coupon)
    return out


# ---------------------------
# Users and bookings
# ---------------------------

USER_SEARCH_FIELDS = ("displayName", "email", "phone")


def filter_users(users: Iterable[Dict[str, Any]], *, search: Optional[str] = None,
                 status: Optional[str] = None) -> List[Dict[str, Any]]:
    out = []
    for user in users:
        if not text_match(user, search, USER_SEARCH_FIELDS):
            continue
        if status == "active" and user.get("isActive") is False:
            continue
        if status == "inactive" and user.get("isActive") is not False:
            continue
        out.append(user)
    return out


def booking_stats(bookings: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total": len(bookings),
        "pending_confirmation": sum(1 for b in bookings if b.get("status") == "pending_confirmation"),
        "confirmed": sum(1 for b in bookings if b.get("status") == "confirmed"),
        "completed": sum(1 for b in bookings if b.get("status") == "completed"),
        "revenue": sum(_number(b.get("amount")) for b in bookings if b.get("paymentStatus") == "completed"),
    }
