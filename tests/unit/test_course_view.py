import pytest

from fitacademy.services import course_view_service as svc
from tests.factories import course_payload

COURSE_PATH = "/api/courses/c1"
ENROLL_PATH = "/api/users/enrollment/c1"
COURSES_PATH = "/api/users/courses"
PROGRESS_PATH = "/api/users/progress"


@pytest.mark.unit
class TestNormalization:
    def test_lessons_sorted_with_fallback_ids(self):
        lessons = svc.normalize_lessons("c1", course_payload()["course"]["lessons"])
        assert [l["id"] for l in lessons] == ["l1", "l2", "l3", "c1-lesson-4"]
        assert lessons[0]["is_preview"] is True
        assert lessons[3]["original_id"] is None

    def test_missing_order_uses_position(self):
        lessons = svc.normalize_lessons("c1", [{"_id": "a"}, {"_id": "b"}])
        assert [l["order"] for l in lessons] == [1, 2]

    def test_instructor_defaults(self):
        course = svc.normalize_course("c1", {"title": "T", "lessons": []})
        assert course["instructor"]["name"]
        assert course["rating"] == {"average": 0.0, "count": 0}


@pytest.mark.unit
class TestEnrollmentCascade:
    async def test_enrollment_endpoint_overrides_course_flag(self, backend, upstream, student):
        upstream.on("GET", ENROLL_PATH, (200, {"success": True, "isEnrolled": False}))
        enrolled, trail = await svc.resolve_enrollment(backend, course_ids=["c1"], viewer=student, course_flag=True)
        assert enrolled is False
        assert [t["stage"] for t in trail] == ["course", "enrollment_check"]
        assert upstream.calls_to("GET", COURSES_PATH) == []

    async def test_course_list_used_when_check_fails(self, backend, upstream, student):
        upstream.on("GET", ENROLL_PATH, (500, {"error": "boom"}))
        upstream.on("GET", COURSES_PATH, (200, {"success": True, "courses": [{"_id": "c9"}, {"_id": "c1"}]}))
        enrolled, trail = await svc.resolve_enrollment(backend, course_ids=["c1"], viewer=student, course_flag=False)
        assert enrolled is True
        assert trail[-1] == {"stage": "courses_list", "is_enrolled": True, "ok": True}

    async def test_all_stages_failing_keeps_course_flag(self, backend, upstream, student):
        upstream.on("GET", ENROLL_PATH, (500, {"error": "boom"}))
        upstream.on("GET", COURSES_PATH, (500, {"error": "boom"}))
        enrolled, _ = await svc.resolve_enrollment(backend, course_ids=["c1"], viewer=student, course_flag=True)
        assert enrolled is True

    async def test_anonymous_never_enrolled(self, backend, upstream):
        enrolled, _ = await svc.resolve_enrollment(backend, course_ids=["c1"], viewer=None, course_flag=True)
        assert enrolled is False
        assert upstream.calls == []


@pytest.mark.unit
class TestAccess:
    def test_admin_can_access_without_enrollment(self, admin):
        access = svc.access_for(admin, False, [])
        assert access["can_access"] is True

    def test_locked_lessons_hide_video(self):
        lessons = svc.normalize_lessons("c1", course_payload()["course"]["lessons"])
        shown = svc.present_lessons(lessons, can_access=False)
        assert shown[0]["video_url"] == "https://v/1"
        assert shown[0]["locked"] is False
        assert all(l["video_url"] is None and l["locked"] for l in shown[1:])

    def test_neighbour_bounds(self):
        lessons = svc.normalize_lessons("c1", course_payload()["course"]["lessons"])
        assert svc.neighbour(lessons, "l1", "prev") is None
        assert svc.neighbour(lessons, "l1", "next")["id"] == "l2"
        assert svc.neighbour(lessons, "c1-lesson-4", "next") is None

    def test_find_lesson_by_original_id(self):
        lessons = svc.normalize_lessons("c1", course_payload()["course"]["lessons"])
        assert svc.find_lesson(lessons, "l3")["title"] == "Deadlift"
        with pytest.raises(svc.LessonNotFound):
            svc.find_lesson(lessons, "nope")


@pytest.mark.unit
class TestCourseView:
    async def test_anonymous_view_is_locked(self, db, redis, backend, tracker, upstream):
        upstream.on("GET", COURSE_PATH, (200, course_payload()))
        view = await svc.get_course_view(db, redis, backend, tracker, course_id="c1", viewer=None)
        assert view["state"] == "locked"
        assert view["access"]["can_access"] is False
        assert view["current_lesson"]["id"] == "l1"
        assert view["progress"]["source"] == "default"

    async def test_anonymous_course_is_cached(self, db, redis, backend, tracker, upstream):
        upstream.on("GET", COURSE_PATH, (200, course_payload()))
        await svc.get_course_view(db, redis, backend, tracker, course_id="c1", viewer=None)
        await svc.get_course_view(db, redis, backend, tracker, course_id="c1", viewer=None)
        assert len(upstream.calls_to("GET", COURSE_PATH)) == 1

    async def test_missing_course(self, db, redis, backend, tracker):
        with pytest.raises(svc.CourseNotFound):
            await svc.get_course_view(db, redis, backend, tracker, course_id="c1", viewer=None)

    async def test_completing_last_lesson_starts_certificate(self, db, redis, backend, tracker, upstream, student):
        upstream.on("GET", COURSE_PATH, (200, course_payload(is_enrolled=True, lessons=[{"_id": "l1", "order": 1}])))
        upstream.on("GET", ENROLL_PATH, (200, {"isEnrolled": True}))
        upstream.on("GET", PROGRESS_PATH, (200, {"progress": []}))
        upstream.on("POST", PROGRESS_PATH, (200, {"success": True}))
        upstream.on("GET", "/api/users/certificate/c1", (200, {"certificate": {"verificationCode": "X"}}))

        view = await svc.complete_lesson(db, redis, backend, tracker, course_id="c1", lesson_id="l1", viewer=student)
        assert view["progress"]["progress_percentage"] == 100
        assert view["state"] == "certificate_pending"

        final = await tracker.wait(student.id, "c1")
        assert final["status"] == "shown"

    async def test_complete_requires_access(self, db, redis, backend, tracker, upstream, student):
        upstream.on("GET", COURSE_PATH, (200, course_payload(is_enrolled=False)))
        upstream.on("GET", ENROLL_PATH, (200, {"isEnrolled": False}))
        with pytest.raises(svc.AccessDenied):
            await svc.complete_lesson(db, redis, backend, tracker, course_id="c1", lesson_id="l2", viewer=student)

    async def test_navigate_moves_and_stops_at_end(self, db, redis, backend, tracker, upstream, student):
        upstream.on("GET", COURSE_PATH, (200, course_payload(is_enrolled=True)))
        upstream.on("GET", ENROLL_PATH, (200, {"isEnrolled": True}))
        upstream.on("GET", PROGRESS_PATH, (200, {"progress": []}))

        prev = await svc.navigate(db, redis, backend, tracker, course_id="c1", direction="prev", viewer=student)
        assert prev["current_lesson"]["id"] == "l1"
        nxt = await svc.navigate(db, redis, backend, tracker, course_id="c1", direction="next", viewer=student)
        assert nxt["current_lesson"]["id"] == "l2"
        again = await svc.get_course_view(db, redis, backend, tracker, course_id="c1", viewer=student)
        assert again["progress"]["current_lesson"] == "l2"


@pytest.mark.unit
class TestCertifiedReviewPayload:
    def test_long_title_truncated(self):
        payload = svc.certified_review_payload("c1", "x" * 200, 5, "")
        assert len(payload["title"]) == 100
        assert payload["title"].endswith("...")

    def test_short_comment_replaced_with_default(self):
        payload = svc.certified_review_payload("c1", "Strength", 4, "great")
        assert "Strength" in payload["comment"]
        assert len(payload["comment"]) >= 10

    def test_long_comment_truncated(self):
        payload = svc.certified_review_payload("c1", "Strength", 4, "a" * 1500)
        assert len(payload["comment"]) == 1000
