# services/admin_service.py
"""
Admin back office over the upstream collections.

Each view is an isolated CRUD surface: nothing here reconciles one entity
with another. Local snapshots are only patched after upstream accepted the
change, and every mutation is written to the audit log.
"""
import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from fastapi.concurrency import run_in_threadpool
from pymongo.database import Database
from pymongo.errors import PyMongoError
from redis.asyncio import Redis

from fitacademy.clients.backend import BackendClient
from fitacademy.config import settings
from fitacademy.messages import AR, PERIOD_LABELS
from fitacademy.repos import audit as audit_repo
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services import listing, notification_service
from fitacademy.services.cache_keys import admin_orders_key, admin_analytics_key, coupon_stats_key
from fitacademy.services.course_view_service import refresh_course
from fitacademy.services.memory_cache import memory_cache, read_through, store, invalidate
from fitacademy.services.progress_service import round_half_up

logger = logging.getLogger(__name__)

ORDERS_TTL = 30
COUPON_STATS_TTL = 60
NEW_ORDER_WINDOW = timedelta(minutes=5)
ORDERS_PREFIX = "admin:orders:"

ORDER_QUERY_FIELDS = ("page", "limit", "search", "status", "dateFrom", "dateTo", "sortBy", "sortOrder")
# what the orders screen asks for on first load; the refresh job keeps it warm
DEFAULT_ORDER_PARAMS = {"page": 1, "limit": 20, "sortBy": "createdAt", "sortOrder": "desc"}


# ---------------------------
# Audit
# ---------------------------

async def audit(db: Database, viewer: Viewer, action: str, target_type: str, target_id: str,
                details: Optional[Dict[str, Any]] = None) -> None:
    """Record an admin action. A failed write is logged, never raised."""
    try:
        await run_in_threadpool(
            audit_repo.insert_action, db,
            actor_id=viewer.id, actor_email=viewer.email, action=action,
            target_type=target_type, target_id=target_id, details=details,
            ts=datetime.utcnow(),
        )
    except PyMongoError as e:
        logger.error(f"Audit write failed for {action} on {target_type} {target_id}: {str(e)}")


async def recent_actions(db: Database, limit: int = 50) -> List[Dict[str, Any]]:
    return await run_in_threadpool(audit_repo.list_recent, db, limit=limit)


async def _patch_snapshots(r: Redis, prefix: str, list_field: str, record_id: str, patch: Dict[str, Any]) -> int:
    """Merge `patch` into every cached snapshot that holds `record_id`."""
    patched = 0
    cursor = 0
    while True:
        cursor, keys = await r.scan(cursor=cursor, match=f"{prefix}*", count=200)
        for key in keys:
            raw = await r.get(key)
            if not raw:
                continue
            try:
                snapshot = json.loads(raw)
            except json.JSONDecodeError:
                continue
            changed = False
            for rec in snapshot.get(list_field) or []:
                if rec.get("id") == record_id or rec.get("_id") == record_id:
                    rec.update(patch)
                    changed = True
            if changed:
                await r.set(key, json.dumps(snapshot, default=str), keepttl=True)
                await memory_cache.delete(key)
                patched += 1
        if cursor == 0:
            break
    return patched


# ---------------------------
# Orders
# ---------------------------

def order_query(params: Dict[str, Any]) -> Dict[str, Any]:
    query = {k: params.get(k) for k in ORDER_QUERY_FIELDS}
    if query.get("status") == "all":
        query["status"] = None
    return {k: v for k, v in query.items() if v is not None and v != ""}


def _query_hash(query: Dict[str, Any]) -> str:
    return hashlib.sha1(json.dumps(query, sort_keys=True, default=str).encode()).hexdigest()[:16]


async def fetch_orders_snapshot(r: Redis, backend: BackendClient, *, token: str, query: Dict[str, Any],
                                notify_user: Optional[str] = None, fresh: bool = False) -> Dict[str, Any]:
    key = admin_orders_key(_query_hash(query))

    async def _load():
        data = await backend.admin_orders(token, query)
        raw_orders = data.get("orders") or []
        orders = [listing.sanitize_order(o) for o in raw_orders]
        new_count = len(listing.recent(orders, within=NEW_ORDER_WINDOW))
        if new_count and notify_user:
            await notification_service.push(
                r, notify_user, "info", AR["new_orders"].format(count=new_count),
                ttl=settings.NOTIFICATION_TTL_SECONDS,
            )
        return {
            "orders": orders,
            "pagination": data.get("pagination") or {},
            "new_orders": new_count,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
        }

    if fresh:
        snapshot = await _load()
        await store(r, key, snapshot, ORDERS_TTL)
        return snapshot
    return await read_through(r, key, ORDERS_TTL, "admin_orders", _load)


async def list_orders(r: Redis, backend: BackendClient, viewer: Viewer, params: Dict[str, Any]) -> Dict[str, Any]:
    query = order_query(params)
    snapshot = await fetch_orders_snapshot(r, backend, token=viewer.token, query=query, notify_user=viewer.id)
    orders = listing.filter_orders(
        snapshot["orders"],
        search=query.get("search"), status=query.get("status"),
        date_from=query.get("dateFrom"), date_to=query.get("dateTo"),
    )
    orders = listing.sort_records(orders, query.get("sortBy") or "createdAt", query.get("sortOrder") or "desc")
    return {
        "orders": orders,
        "pagination": snapshot["pagination"],
        "stats": listing.order_stats(orders),
        "new_orders": snapshot.get("new_orders", 0),
        "fetched_at": snapshot.get("fetched_at"),
    }


async def update_order_status(db: Database, r: Redis, backend: BackendClient, viewer: Viewer, *,
                              order_id: str, status: str, notes: Optional[str] = None) -> Dict[str, Any]:
    payload = {"status": status}
    if notes:
        payload["notes"] = notes
    updated = await backend.update_order(viewer.token, order_id, payload)
    # upstream accepted the change, now the snapshots may follow
    patch = {"status": status}
    if updated:
        patch = {k: v for k, v in listing.sanitize_order(updated).items() if k in ("status", "updatedAt", "notes")}
        patch.setdefault("status", status)
    await _patch_snapshots(r, ORDERS_PREFIX, "orders", order_id, patch)
    await audit(db, viewer, "order.status", "order", order_id, {"status": status})
    await notification_service.push(r, viewer.id, "success", AR["order_updated"], ttl=settings.NOTIFICATION_TTL_SECONDS)
    return {"order": listing.sanitize_order(updated) if updated else {"id": order_id, **patch}, "message": AR["order_updated"]}


# ---------------------------
# Coupons
# ---------------------------

async def coupon_stats(r: Redis, backend: BackendClient, token: str) -> Dict[str, Any]:
    async def _load():
        return await backend.coupon_stats(token)
    return await read_through(r, coupon_stats_key(), COUPON_STATS_TTL, "coupon_stats", _load) or {}


async def list_coupons(r: Redis, backend: BackendClient, viewer: Viewer, *, search: Optional[str] = None,
                       status: str = "all") -> Dict[str, Any]:
    coupons = await backend.list_coupons(viewer.token)
    return {
        "coupons": listing.filter_coupons(coupons, search=search, status=status),
        "stats": await coupon_stats(r, backend, viewer.token),
    }


def _coupon_from(data: Dict[str, Any]) -> Dict[str, Any]:
    return data.get("coupon") or (data.get("data") or {}).get("coupon") or data


async def create_coupon(db: Database, r: Redis, backend: BackendClient, viewer: Viewer,
                        payload: Dict[str, Any]) -> Dict[str, Any]:
    coupon = _coupon_from(await backend.create_coupon(viewer.token, payload))
    await invalidate(r, coupon_stats_key())
    await audit(db, viewer, "coupon.create", "coupon", str(coupon.get("_id") or payload["code"]), {"code": payload["code"]})
    return {"coupon": coupon, "message": AR["coupon_created"]}


async def update_coupon(db: Database, r: Redis, backend: BackendClient, viewer: Viewer, *,
                        coupon_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    coupon = _coupon_from(await backend.update_coupon(viewer.token, coupon_id, payload))
    await invalidate(r, coupon_stats_key())
    await audit(db, viewer, "coupon.update", "coupon", coupon_id, payload)
    return {"coupon": coupon, "message": AR["coupon_updated"]}


async def delete_coupon(db: Database, r: Redis, backend: BackendClient, viewer: Viewer, *, coupon_id: str) -> Dict[str, Any]:
    await backend.delete_coupon(viewer.token, coupon_id)
    await invalidate(r, coupon_stats_key())
    await audit(db, viewer, "coupon.delete", "coupon", coupon_id)
    return {"message": AR["coupon_deleted"]}


# ---------------------------
# Lessons
# ---------------------------

async def list_lessons(backend: BackendClient, viewer: Viewer, course_id: str) -> List[Dict[str, Any]]:
    lessons = await backend.course_lessons(viewer.token, course_id)
    return listing.sort_records(lessons, "order", "asc")


async def save_lesson(db: Database, r: Redis, backend: BackendClient, viewer: Viewer, *, course_id: str,
                      payload: Dict[str, Any], lesson_id: Optional[str] = None) -> Dict[str, Any]:
    """Create, or update when `lesson_id` is given. New lessons go last by default."""
    if lesson_id:
        data = await backend.update_lesson(viewer.token, course_id, lesson_id, payload)
        action = "lesson.update"
    else:
        if payload.get("order") is None:
            existing = await backend.course_lessons(viewer.token, course_id)
            payload = dict(payload, order=len(existing) + 1)
        data = await backend.create_lesson(viewer.token, course_id, payload)
        action = "lesson.create"
    lesson = data.get("lesson") or (data.get("data") or {}).get("lesson") or payload
    await refresh_course(r, course_id)
    await audit(db, viewer, action, "lesson", str(lesson_id or lesson.get("_id") or ""), {"course_id": course_id})
    return {"lesson": lesson, "message": AR["lesson_saved"]}


async def delete_lesson(db: Database, r: Redis, backend: BackendClient, viewer: Viewer, *,
                        course_id: str, lesson_id: str) -> Dict[str, Any]:
    await backend.delete_lesson(viewer.token, course_id, lesson_id)
    await refresh_course(r, course_id)
    await audit(db, viewer, "lesson.delete", "lesson", lesson_id, {"course_id": course_id})
    return {"message": AR["lesson_deleted"]}


# ---------------------------
# Users
# ---------------------------

async def list_users(backend: BackendClient, viewer: Viewer, *, page: int = 1, limit: int = 20,
                     search: Optional[str] = None, status: Optional[str] = None,
                     sort_by: Optional[str] = None, sort_order: str = "desc") -> Dict[str, Any]:
    data = await backend.admin_users(viewer.token, {"page": page, "limit": limit, "search": search, "status": status})
    users = listing.filter_users(data.get("users") or [], search=search, status=status)
    return {
        "users": listing.sort_records(users, sort_by, sort_order),
        "pagination": data.get("pagination") or {},
    }


async def update_user(db: Database, backend: BackendClient, viewer: Viewer, *, user_id: str,
                      payload: Dict[str, Any]) -> Dict[str, Any]:
    user = await backend.update_user(viewer.token, user_id, payload)
    await audit(db, viewer, "user.update", "user", user_id, payload)
    return user


async def update_user_notes(db: Database, backend: BackendClient, viewer: Viewer, *, user_id: str,
                            notes: str) -> Dict[str, Any]:
    data = await backend.update_user_notes(viewer.token, user_id, notes)
    await audit(db, viewer, "user.notes", "user", user_id)
    return data


async def set_enrollment(db: Database, r: Redis, backend: BackendClient, viewer: Viewer, *, user_id: str,
                         course_id: str, enrolled: bool) -> Dict[str, Any]:
    if enrolled:
        data = await backend.enroll_user(viewer.token, user_id, course_id)
    else:
        data = await backend.unenroll_user(viewer.token, user_id, course_id)
    await refresh_course(r, course_id)
    await audit(db, viewer, "user.enroll" if enrolled else "user.unenroll", "user", user_id, {"course_id": course_id})
    return data


# ---------------------------
# Consultations
# ---------------------------

async def list_bookings(backend: BackendClient, viewer: Viewer, *, status: Optional[str] = None,
                        search: Optional[str] = None) -> Dict[str, Any]:
    bookings = await backend.admin_bookings(viewer.token, None if status in (None, "", "all") else status)
    if search:
        bookings = [
            b for b in bookings
            if listing.text_match(b, search, ("bookingNumber",))
            or listing.text_match(b.get("userDetails") or {}, search, ("name", "email", "phone"))
        ]
    return {"bookings": bookings, "stats": listing.booking_stats(bookings)}


async def get_booking(backend: BackendClient, viewer: Viewer, booking_id: str) -> Dict[str, Any]:
    return await backend.admin_booking(viewer.token, booking_id)


async def update_booking_status(db: Database, backend: BackendClient, viewer: Viewer, *, booking_id: str,
                                payload: Dict[str, Any]) -> Dict[str, Any]:
    booking = await backend.update_booking_status(viewer.token, booking_id, payload)
    await audit(db, viewer, "booking.status", "booking", booking_id, {"status": payload.get("status")})
    return {"booking": booking or {"_id": booking_id, **payload}, "message": AR["booking_updated"]}


# ---------------------------
# Analytics
# ---------------------------

def growth_percentage(current: float, previous: float) -> int:
    if previous == 0:
        return 100 if current > 0 else 0
    return round_half_up((current - previous) / previous * 100)


def _series_growth(series: List[Dict[str, Any]], field: str) -> int:
    points = [p for p in series if isinstance(p, dict) and field in p]
    if len(points) < 2:
        return 0
    return growth_percentage(float(points[-1][field] or 0), float(points[-2][field] or 0))


def derive_metrics(analytics: Dict[str, Any]) -> Dict[str, Any]:
    total_revenue = float((analytics.get("revenue") or {}).get("totalRevenue") or 0)
    total_students = sum(int(x.get("count") or 0) for x in analytics.get("userGrowth") or [])
    total_courses = len(analytics.get("popularCourses") or [])
    monthly = analytics.get("monthlyGrowthData") or []
    return {
        "total_revenue": total_revenue,
        "total_students": total_students,
        "total_courses": total_courses,
        "avg_revenue_per_student": total_revenue / total_students if total_students > 0 else 0.0,
        "revenue_growth": _series_growth(monthly, "revenue"),
        "student_growth": _series_growth(monthly, "students"),
        "course_growth": _series_growth(monthly, "courses"),
    }


def _analytics_view(period: str, analytics: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "period": period,
        "period_label": PERIOD_LABELS[period],
        "metrics": derive_metrics(analytics),
        "analytics": analytics,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


async def get_analytics(r: Redis, backend: BackendClient, token: str, period: str = "30d") -> Dict[str, Any]:
    if period not in PERIOD_LABELS:
        raise ValueError(f"Unsupported period: {period}")
    ttl = settings.ANALYTICS_REFRESH_MINUTES * 60

    async def _load():
        return _analytics_view(period, await backend.admin_analytics(token, period))

    return await read_through(r, admin_analytics_key(period), ttl, "admin_analytics", _load)


async def refresh_analytics(r: Redis, backend: BackendClient, token: str, period: str) -> Dict[str, Any]:
    view = _analytics_view(period, await backend.admin_analytics(token, period))
    await store(r, admin_analytics_key(period), view, settings.ANALYTICS_REFRESH_MINUTES * 60)
    return view
