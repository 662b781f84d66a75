import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from fitacademy.clients.backend import BackendError
from fitacademy.repos import audit as audit_repo
from fitacademy.schemas.admin_schema import CouponIn
from fitacademy.services import admin_service, listing, notification_service

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _order(order_id, status="completed", amount=100, created="2026-02-20T10:00:00Z", **extra):
    return {
        "_id": order_id,
        "status": status,
        "amount": amount,
        "createdAt": created,
        "userId": {"_id": "u9", "email": "lifter@fit.test", "displayName": "Lifter"},
        "courseId": {"_id": "c1", "title": "Strength Basics"},
        **extra,
    }


@pytest.mark.unit
class TestListing:
    def test_sanitize_flattens_references(self):
        order = listing.sanitize_order(_order("o1"))
        assert order["userId"] == "u9"
        assert order["userEmail"] == "lifter@fit.test"
        assert order["courseTitle"] == "Strength Basics"
        assert order["orderType"] == "course"

    def test_consultation_order_type(self):
        order = listing.sanitize_order({
            "_id": "o2",
            "consultationBookingId": {"_id": "b1", "bookingNumber": "BK-7", "consultationId": {"title": "Form check"}},
        })
        assert order["orderType"] == "consultation"
        assert order["consultationTitle"] == "Form check"
        assert order["consultationBookingNumber"] == "BK-7"

    def test_filter_by_search_status_and_whole_end_day(self):
        orders = [listing.sanitize_order(o) for o in (
            _order("o1", created="2026-02-20T23:59:00Z"),
            _order("o2", status="pending", created="2026-02-20T08:00:00Z"),
            _order("o3", created="2026-02-21T00:00:01Z"),
        )]
        hits = listing.filter_orders(orders, status="completed", date_from="2026-02-20", date_to="2026-02-20")
        assert [o["id"] for o in hits] == ["o1"]
        assert [o["id"] for o in listing.filter_orders(orders, search="LIFTER")] == ["o1", "o2", "o3"]

    def test_sort_numeric_and_dates(self):
        records = [{"amount": 9, "createdAt": "2026-01-02"}, {"amount": 10, "createdAt": "2026-01-01"}]
        assert [r["amount"] for r in listing.sort_records(records, "amount", "asc")] == [9, 10]
        assert [r["amount"] for r in listing.sort_records(records, "createdAt")] == [9, 10]

    def test_order_stats(self):
        orders = [
            _order("o1", amount=50),
            _order("o2", amount=70),
            _order("o3", status="pending", paymentMethod="bank_transfer", bankTransfer={"verificationStatus": "pending"}),
            _order("o4", status="failed"),
        ]
        stats = listing.order_stats(orders)
        assert stats["total_revenue"] == 120
        assert stats["completed_orders"] == 2
        assert stats["pending_bank_transfers"] == 1
        assert stats["failed_orders"] == 1

    def test_recent_window(self):
        records = [
            {"createdAt": (NOW - timedelta(minutes=2)).isoformat()},
            {"createdAt": (NOW - timedelta(minutes=10)).isoformat()},
        ]
        assert len(listing.recent(records, within=timedelta(minutes=5), now=NOW)) == 1

    def test_expired_filter_includes_inactive(self):
        coupons = [
            {"code": "LIVE", "isActive": True, "validUntil": "2027-01-01T00:00:00Z"},
            {"code": "OFF", "isActive": False},
            {"code": "OLD", "isActive": True, "validUntil": "2025-01-01T00:00:00Z"},
        ]
        expired = listing.filter_coupons(coupons, status="expired", now=NOW)
        assert [c["code"] for c in expired] == ["OFF", "OLD"]
        active = listing.filter_coupons(coupons, status="active", now=NOW)
        assert [c["code"] for c in active] == ["LIVE"]


@pytest.mark.unit
class TestCouponInput:
    def test_code_upper_cased_and_blank_limit(self):
        coupon = CouponIn(code=" summer ", discountValue=20, maxUses="")
        assert coupon.code == "SUMMER"
        assert coupon.maxUses is None

    def test_numeric_limit_from_form(self):
        assert CouponIn(code="X", discountValue=5, maxUses="10").maxUses == 10

    def test_percentage_over_100_rejected(self):
        with pytest.raises(ValidationError):
            CouponIn(code="X", discountType="percentage", discountValue=150)


@pytest.mark.unit
class TestAnalytics:
    @pytest.mark.parametrize("current,previous,expected", [
        (0, 0, 0),
        (5, 0, 100),
        (150, 100, 50),
        (9, 8, 13),
        (50, 100, -50),
    ])
    def test_growth_percentage(self, current, previous, expected):
        assert admin_service.growth_percentage(current, previous) == expected

    def test_derive_metrics(self):
        metrics = admin_service.derive_metrics({
            "revenue": {"totalRevenue": 900},
            "userGrowth": [{"count": 10}, {"count": 20}],
            "popularCourses": [{}, {}, {}],
            "monthlyGrowthData": [
                {"revenue": 400, "students": 10, "courses": 2},
                {"revenue": 500, "students": 20, "courses": 2},
            ],
        })
        assert metrics["total_students"] == 30
        assert metrics["avg_revenue_per_student"] == 30
        assert metrics["revenue_growth"] == 25
        assert metrics["student_growth"] == 100
        assert metrics["course_growth"] == 0

    async def test_unknown_period_rejected(self, redis, backend):
        with pytest.raises(ValueError):
            await admin_service.get_analytics(redis, backend, "tok", "5y")


@pytest.mark.unit
class TestOrders:
    async def test_list_orders_notifies_new_orders(self, redis, backend, upstream, admin):
        fresh = datetime.now(timezone.utc).isoformat()
        upstream.on("GET", "/api/admin/orders", (200, {"success": True, "data": {
            "orders": [_order("o1", created=fresh), _order("o2", status="pending")],
            "pagination": {"total": 2},
        }}))
        result = await admin_service.list_orders(redis, backend, admin, dict(admin_service.DEFAULT_ORDER_PARAMS))
        assert [o["id"] for o in result["orders"]] == ["o1", "o2"]
        assert result["new_orders"] == 1
        assert result["stats"]["total_orders"] == 2
        toasts = await notification_service.list_active(redis, admin.id)
        assert toasts[0]["type"] == "info"

    async def test_status_update_patches_snapshot_after_success(self, db, redis, backend, upstream, admin):
        upstream.on("GET", "/api/admin/orders", (200, {"data": {"orders": [_order("o2", status="pending")]}}))
        upstream.on("PUT", "/api/admin/orders/o2", (200, {"data": {"order": _order("o2", status="completed")}}))
        params = dict(admin_service.DEFAULT_ORDER_PARAMS)
        await admin_service.list_orders(redis, backend, admin, params)

        await admin_service.update_order_status(db, redis, backend, admin, order_id="o2", status="completed")

        listed = await admin_service.list_orders(redis, backend, admin, params)
        assert listed["orders"][0]["status"] == "completed"
        assert len(upstream.calls_to("GET", "/api/admin/orders")) == 1
        assert audit_repo.list_recent(db, limit=5)[0]["action"] == "order.status"

    async def test_rejected_update_leaves_snapshot(self, db, redis, backend, upstream, admin):
        upstream.on("GET", "/api/admin/orders", (200, {"data": {"orders": [_order("o2", status="pending")]}}))
        upstream.on("PUT", "/api/admin/orders/o2", (400, {"error": "Invalid transition"}))
        params = dict(admin_service.DEFAULT_ORDER_PARAMS)
        await admin_service.list_orders(redis, backend, admin, params)

        with pytest.raises(BackendError):
            await admin_service.update_order_status(db, redis, backend, admin, order_id="o2", status="refunded")

        keys = [k async for k in redis.scan_iter(match=f"{admin_service.ORDERS_PREFIX}*")]
        key = keys[0]
        assert json.loads(await redis.get(key))["orders"][0]["status"] == "pending"
        assert audit_repo.list_recent(db, limit=5) == []


@pytest.mark.unit
class TestMutations:
    async def test_new_lesson_goes_last(self, db, redis, backend, upstream, admin):
        upstream.on("GET", "/api/admin/courses/c1/lessons", (200, {"lessons": [{"_id": "l1"}, {"_id": "l2"}]}))
        upstream.on("POST", "/api/admin/courses/c1/lessons", (201, {"lesson": {"_id": "l3", "order": 3}}))
        result = await admin_service.save_lesson(db, redis, backend, admin, course_id="c1", payload={"title": "Mobility"})
        sent = json.loads(upstream.calls_to("POST", "/api/admin/courses/c1/lessons")[0].content)
        assert sent["order"] == 3
        assert result["lesson"]["_id"] == "l3"

    async def test_audit_failure_does_not_fail_mutation(self, db, redis, backend, upstream, admin, monkeypatch):
        def broken(*args, **kwargs):
            raise PyMongoError("disk full")

        monkeypatch.setattr(audit_repo, "insert_action", broken)
        upstream.on("DELETE", "/api/coupons/k1", (200, {"success": True}))
        result = await admin_service.delete_coupon(db, redis, backend, admin, coupon_id="k1")
        assert result["message"]
