import pytest

from fitacademy.config import settings
from fitacademy.tasks import scheduler


@pytest.mark.unit
class TestRefreshJobs:
    async def test_skipped_without_service_token(self, redis, backend, upstream, monkeypatch):
        monkeypatch.setattr(settings, "BACKEND_SERVICE_TOKEN", "")
        assert await scheduler.refresh_analytics(redis, backend) == 0
        assert await scheduler.refresh_orders(redis, backend) == 0
        assert upstream.calls == []

    async def test_analytics_refreshed_per_period(self, redis, backend, upstream, monkeypatch):
        monkeypatch.setattr(settings, "BACKEND_SERVICE_TOKEN", "svc")
        upstream.on("GET", "/api/admin/analytics", (200, {"analytics": {"revenue": {"totalRevenue": 10}}}))
        assert await scheduler.refresh_analytics(redis, backend) == 4
        assert await redis.get("admin:analytics:30d") is not None

    async def test_orders_refresh_counts_orders(self, redis, backend, upstream, monkeypatch):
        monkeypatch.setattr(settings, "BACKEND_SERVICE_TOKEN", "svc")
        upstream.on("GET", "/api/admin/orders", (200, {"data": {"orders": [{"_id": "o1"}, {"_id": "o2"}]}}))
        assert await scheduler.refresh_orders(redis, backend) == 2

    def test_jobs_registered(self, redis, backend):
        sched = scheduler.create_scheduler()
        scheduler.schedule_jobs(sched, redis, backend)
        assert {job.id for job in sched.get_jobs()} == {"refresh_analytics", "refresh_orders"}
