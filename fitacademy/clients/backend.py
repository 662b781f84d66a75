# clients/backend.py
"""
Async client for the platform backend.

Every call forwards the viewer's bearer token. Non-2xx responses raise
BackendError carrying the upstream payload (which usually has an `arabic`
field meant for the user); transport failures raise BackendUnavailable.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class BackendError(Exception):
    def __init__(self, status_code: int, payload: Optional[Dict[str, Any]] = None, path: str = ""):
        self.status_code = status_code
        self.payload = payload or {}
        self.path = path
        super().__init__(self.payload.get("error") or f"Backend returned {status_code} for {path}")

    @property
    def arabic(self) -> Optional[str]:
        return self.payload.get("arabic")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_auth_error(self) -> bool:
        return self.status_code == 401


class BackendUnavailable(ConnectionError):
    pass


class BackendClient:
    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, *, token: Optional[str] = None,
                      params: Optional[Dict[str, Any]] = None, json: Any = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}
        try:
            resp = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Backend {method} {path} failed: {str(e)}")
            raise BackendUnavailable(f"Backend unreachable: {str(e)}") from e

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if resp.status_code >= 400:
            logger.warning(f"Backend {method} {path} -> {resp.status_code}")
            raise BackendError(resp.status_code, data, path)
        return data

    async def get(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Dict[str, Any]:
        return await self.request("DELETE", path, **kwargs)

    # ---------------------------
    # Viewer
    # ---------------------------

    async def current_user(self, token: str) -> Dict[str, Any]:
        data = await self.get("/api/auth/me", token=token)
        return data.get("user") or {}

    # ---------------------------
    # Courses, enrollment, progress
    # ---------------------------

    async def get_course(self, course_id: str, token: Optional[str] = None) -> Dict[str, Any]:
        data = await self.get(f"/api/courses/{course_id}", token=token)
        return data.get("course") or data

    async def check_enrollment(self, course_id: str, token: str) -> Dict[str, Any]:
        return await self.get(f"/api/users/enrollment/{course_id}", token=token)

    async def user_courses(self, token: str) -> Dict[str, Any]:
        return await self.get("/api/users/courses", token=token)

    async def lesson_progress(self, course_id: str, token: str) -> Dict[str, Any]:
        return await self.get("/api/users/progress", token=token, params={"courseId": course_id})

    async def save_lesson_progress(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/api/users/progress", token=token, json=payload)

    async def get_certificate(self, course_id: str, token: str) -> Dict[str, Any]:
        return await self.get(f"/api/users/certificate/{course_id}", token=token)

    # ---------------------------
    # Reviews
    # ---------------------------

    async def course_reviews(self, course_id: str, *, page: int = 1, limit: int = 5) -> Dict[str, Any]:
        return await self.get(f"/api/reviews/course/{course_id}", params={"page": page, "limit": limit})

    async def create_review(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/api/reviews", token=token, json=payload)

    async def update_review(self, token: str, review_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"/api/reviews/{review_id}", token=token, json=payload)

    async def delete_review(self, token: str, review_id: str) -> Dict[str, Any]:
        return await self.delete(f"/api/reviews/{review_id}", token=token)

    async def vote_review(self, token: str, review_id: str, helpful: bool) -> Dict[str, Any]:
        return await self.post(f"/api/reviews/{review_id}/vote", token=token, json={"helpful": helpful})

    # ---------------------------
    # Coupons
    # ---------------------------

    async def list_coupons(self, token: str) -> List[Dict[str, Any]]:
        data = await self.get("/api/coupons", token=token)
        return data.get("coupons") or []

    async def coupon_stats(self, token: str) -> Dict[str, Any]:
        data = await self.get("/api/coupons/stats/overview", token=token)
        return data.get("stats") or {}

    async def create_coupon(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/api/coupons", token=token, json=payload)

    async def update_coupon(self, token: str, coupon_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"/api/coupons/{coupon_id}", token=token, json=payload)

    async def delete_coupon(self, token: str, coupon_id: str) -> Dict[str, Any]:
        return await self.delete(f"/api/coupons/{coupon_id}", token=token)

    # ---------------------------
    # Admin: orders, users, analytics, lessons
    # ---------------------------

    async def admin_orders(self, token: str, params: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.get("/api/admin/orders", token=token, params=params)
        return data.get("data") or {}

    async def update_order(self, token: str, order_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.put(f"/api/admin/orders/{order_id}", token=token, json=payload)
        return (data.get("data") or {}).get("order") or {}

    async def admin_users(self, token: str, params: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.get("/api/admin/users", token=token, params=params)
        return data.get("data") or {}

    async def update_user(self, token: str, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.put(f"/api/admin/users/{user_id}", token=token, json=payload)
        return (data.get("data") or {}).get("user") or {}

    async def update_user_notes(self, token: str, user_id: str, notes: str) -> Dict[str, Any]:
        return await self.put(f"/api/admin/users/{user_id}/notes", token=token, json={"notes": notes})

    async def enroll_user(self, token: str, user_id: str, course_id: str) -> Dict[str, Any]:
        return await self.post(f"/api/admin/users/{user_id}/enroll/{course_id}", token=token)

    async def unenroll_user(self, token: str, user_id: str, course_id: str) -> Dict[str, Any]:
        return await self.delete(f"/api/admin/users/{user_id}/enroll/{course_id}", token=token)

    async def admin_analytics(self, token: str, period: str) -> Dict[str, Any]:
        data = await self.get("/api/admin/analytics", token=token, params={"period": period})
        return data.get("analytics") or {}

    async def course_lessons(self, token: str, course_id: str) -> List[Dict[str, Any]]:
        data = await self.get(f"/api/admin/courses/{course_id}/lessons", token=token)
        return data.get("lessons") or (data.get("data") or {}).get("lessons") or []

    async def create_lesson(self, token: str, course_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post(f"/api/admin/courses/{course_id}/lessons", token=token, json=payload)

    async def update_lesson(self, token: str, course_id: str, lesson_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"/api/admin/courses/{course_id}/lessons/{lesson_id}", token=token, json=payload)

    async def delete_lesson(self, token: str, course_id: str, lesson_id: str) -> Dict[str, Any]:
        return await self.delete(f"/api/admin/courses/{course_id}/lessons/{lesson_id}", token=token)

    # ---------------------------
    # Consultations
    # ---------------------------

    async def create_booking(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/api/consultations/bookings", token=token, json=payload)

    async def admin_bookings(self, token: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        data = await self.get("/api/consultations/admin/bookings", token=token, params={"status": status})
        return data.get("bookings") or []

    async def admin_booking(self, token: str, booking_id: str) -> Dict[str, Any]:
        data = await self.get(f"/api/consultations/admin/bookings/{booking_id}", token=token)
        return data.get("booking") or {}

    async def update_booking_status(self, token: str, booking_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.patch(f"/api/consultations/admin/bookings/{booking_id}/status", token=token, json=payload)
        return data.get("booking") or {}

    # ---------------------------
    # Health
    # ---------------------------

    async def ping(self) -> bool:
        """True when the backend answers at all; an error status still counts as reachable."""
        try:
            await self.get("/api/health")
        except BackendError as e:
            logger.debug(f"Backend health endpoint returned {e.status_code}")
        return True
