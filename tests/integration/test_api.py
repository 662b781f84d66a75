import httpx
import pytest

from fitacademy.main import app
from fitacademy.messages import AR
from tests.factories import ADMIN_TOKEN, STUDENT_TOKEN, course_payload


@pytest.fixture
async def client(db, redis, backend, tracker):
    """HTTP client against the app with test doubles on app.state."""
    app.state.db = db
    app.state.redis = redis
    app.state.backend = backend
    app.state.certificates = tracker
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://web.test") as c:
        yield c


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.integration
class TestCourseRoutes:
    async def test_anonymous_course_view(self, client, upstream):
        upstream.on("GET", "/api/courses/c1", (200, course_payload()))
        resp = await client.get("/courses/c1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["state"] == "locked"
        videos = {l["id"]: l["video_url"] for l in body["course"]["lessons"]}
        assert videos == {"l1": "https://v/1", "l2": None, "l3": None, "c1-lesson-4": None}

    async def test_unknown_course_is_404(self, client):
        resp = await client.get("/courses/nope")
        assert resp.status_code == 404
        assert resp.json()["detail"] == AR["course_not_found"]

    async def test_complete_requires_login(self, client):
        resp = await client.post("/courses/c1/lessons/l1/complete")
        assert resp.status_code == 401
        assert resp.json()["detail"] == AR["login_required"]

    async def test_complete_denied_when_not_enrolled(self, client, upstream):
        upstream.on("GET", "/api/courses/c1", (200, course_payload(is_enrolled=False)))
        upstream.on("GET", "/api/users/enrollment/c1", (200, {"isEnrolled": False}))
        resp = await client.post("/courses/c1/lessons/l2/complete", headers=_auth(STUDENT_TOKEN))
        assert resp.status_code == 403

    async def test_enrolled_student_completes_lesson(self, client, upstream):
        upstream.on("GET", "/api/courses/c1", (200, course_payload(is_enrolled=True)))
        upstream.on("GET", "/api/users/enrollment/c1", (200, {"isEnrolled": True}))
        upstream.on("GET", "/api/users/progress", (200, {"progress": []}))
        upstream.on("POST", "/api/users/progress", (200, {"success": True}))
        resp = await client.post("/courses/c1/lessons/l2/complete", headers=_auth(STUDENT_TOKEN))
        assert resp.status_code == 200
        body = resp.json()
        assert body["state"] == "unlocked"
        assert body["progress"]["completed_lessons"] == ["l2"]
        assert body["progress"]["progress_percentage"] == 25
        assert body["course"]["lessons"][1]["video_url"] == "https://v/2"

    async def test_navigate_rejects_unknown_direction(self, client):
        resp = await client.post("/courses/c1/navigate", json={"direction": "sideways"})
        assert resp.status_code == 422

    async def test_certificate_status_idle(self, client):
        resp = await client.get("/courses/c1/certificate", headers=_auth(STUDENT_TOKEN))
        assert resp.status_code == 200
        assert resp.json()["status"] == "idle"


@pytest.mark.integration
class TestReviewRoutes:
    async def test_rating_zero_is_rejected(self, client):
        resp = await client.post(
            "/courses/c1/reviews",
            json={"rating": 0, "title": "Great plan", "comment": "Worked well for me"},
            headers=_auth(STUDENT_TOKEN),
        )
        assert resp.status_code == 422


@pytest.mark.integration
class TestAdminRoutes:
    async def test_student_gets_403(self, client):
        resp = await client.get("/admin/orders", headers=_auth(STUDENT_TOKEN))
        assert resp.status_code == 403
        assert resp.json()["detail"] == AR["admin_required"]

    async def test_admin_lists_orders(self, client, upstream):
        upstream.on("GET", "/api/admin/orders", (200, {"data": {"orders": [
            {"_id": "o1", "status": "completed", "amount": 30, "createdAt": "2026-02-01T10:00:00Z"},
        ], "pagination": {"total": 1}}}))
        resp = await client.get("/admin/orders", headers=_auth(ADMIN_TOKEN))
        assert resp.status_code == 200
        body = resp.json()
        assert body["stats"]["total_revenue"] == 30
        assert body["orders"][0]["id"] == "o1"

    async def test_upstream_rejection_keeps_status(self, client, upstream):
        upstream.on("POST", "/api/coupons", (400, {"error": "Coupon code exists", "arabic": "كود الخصم موجود مسبقاً"}))
        resp = await client.post("/admin/coupons", json={"code": "fit10", "discountValue": 10},
                                 headers=_auth(ADMIN_TOKEN))
        assert resp.status_code == 400
        assert resp.json()["arabic"] == "كود الخصم موجود مسبقاً"

    async def test_unreachable_upstream_is_503(self, client, upstream):
        def down(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream.on("GET", "/api/coupons", down)
        resp = await client.get("/admin/coupons", headers=_auth(ADMIN_TOKEN))
        assert resp.status_code == 503

    async def test_unknown_analytics_period(self, client):
        resp = await client.get("/admin/analytics", params={"period": "5y"}, headers=_auth(ADMIN_TOKEN))
        assert resp.status_code in (400, 422)


@pytest.mark.integration
class TestNotificationRoutes:
    async def test_failed_booking_leaves_error_toast(self, client, upstream):
        upstream.on("POST", "/api/consultations/bookings", (400, {"error": "Phone number is required"}))
        resp = await client.post("/consultations/bookings", headers=_auth(STUDENT_TOKEN), json={
            "consultationId": "cons1", "preferredDate": "2026-11-02", "preferredTime": "18:00",
            "meetingType": "online",
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["next_step"] == "/profile"

        toasts = await client.get("/notifications", headers=_auth(STUDENT_TOKEN))
        assert toasts.json()["notifications"][0]["type"] == "error"
