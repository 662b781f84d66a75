"""Payload builders and the upstream stub used across the test suite."""
import time

import httpx
import jwt


def make_token(user_id: str, email: str, ttl: int = 3600) -> str:
    return jwt.encode({"userId": user_id, "email": email, "exp": int(time.time()) + ttl}, "test-secret", algorithm="HS256")


STUDENT = {"_id": "u1", "email": "student@fit.test", "displayName": "Student One"}
ADMIN = {"_id": "a1", "email": "coach@fitacademy.test", "displayName": "Coach"}
STUDENT_TOKEN = make_token(STUDENT["_id"], STUDENT["email"])
ADMIN_TOKEN = make_token(ADMIN["_id"], ADMIN["email"])


def course_payload(is_enrolled=None, lessons=None):
    course = {
        "_id": "c1",
        "title": "برنامج القوة",
        "description": "تمارين القوة للمبتدئين",
        "price": 49,
        "rating": {"average": 4.5, "count": 12},
        "enrollmentCount": 30,
        "instructor": {"name": "Coach", "bio": "Trainer"},
        "lessons": lessons if lessons is not None else [
            {"_id": "l2", "title": "Squats", "order": 2, "videoUrl": "https://v/2"},
            {"_id": "l1", "title": "Warm up", "order": 1, "videoUrl": "https://v/1", "isFree": True},
            {"_id": "l3", "title": "Deadlift", "order": 3, "videoUrl": "https://v/3"},
            {"title": "Cool down", "order": 4, "videoUrl": "https://v/4"},
        ],
    }
    if is_enrolled is not None:
        course["isEnrolled"] = is_enrolled
    return {"success": True, "course": course}


class UpstreamStub:
    """Route table for the fake platform backend.

    Each route holds a list of responses; they are served in order and the
    last one repeats. A response is (status, json) or a callable taking the
    httpx.Request.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method: str, path: str, *responses):
        self.routes[(method.upper(), path)] = list(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"success": False, "error": "Not found"})
        item = queue[0] if len(queue) == 1 else queue.pop(0)
        if callable(item):
            return item(request)
        status, body = item
        return httpx.Response(status, json=body)

    def calls_to(self, method: str, path: str):
        return [c for c in self.calls if c.method == method.upper() and c.url.path == path]


def me_handler(request: httpx.Request) -> httpx.Response:
    auth = request.headers.get("Authorization", "")
    if auth == f"Bearer {STUDENT_TOKEN}":
        return httpx.Response(200, json={"success": True, "user": STUDENT})
    if auth == f"Bearer {ADMIN_TOKEN}":
        return httpx.Response(200, json={"success": True, "user": ADMIN})
    return httpx.Response(401, json={"success": False, "error": "Unauthorized", "arabic": "يرجى تسجيل الدخول"})
