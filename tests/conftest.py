"""
Shared fixtures. Upstream HTTP is served by an httpx.MockTransport stub,
Redis by fakeredis and MongoDB by mongomock.
"""
import os

# settings are read at import time
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017/fitacademy_test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("ADMIN_EMAILS", "Coach@FitAcademy.test")

import httpx
import mongomock
import pytest
from fakeredis import aioredis as fake_aioredis

from fitacademy.clients.backend import BackendClient
from fitacademy.schemas.auth_schemas import Viewer
from fitacademy.services.certificate_service import CertificatePoller, CertificateTracker
from fitacademy.services.memory_cache import memory_cache
from tests.factories import ADMIN, ADMIN_TOKEN, STUDENT, STUDENT_TOKEN, UpstreamStub, me_handler


@pytest.fixture(autouse=True)
async def clear_memory_cache():
    await memory_cache.clear()
    yield
    await memory_cache.clear()


@pytest.fixture
def upstream():
    stub = UpstreamStub()
    stub.on("GET", "/api/auth/me", me_handler)
    return stub


@pytest.fixture
async def backend(upstream):
    client = BackendClient("http://backend.test", transport=httpx.MockTransport(upstream.handler))
    yield client
    await client.aclose()


@pytest.fixture
async def redis():
    r = fake_aioredis.FakeRedis(decode_responses=True)
    yield r
    await r.flushall()


@pytest.fixture
def db():
    return mongomock.MongoClient().fitacademy_test


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def poller(backend, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return CertificatePoller(backend, initial_delay=2.0, retry_delays=[3.0, 6.0], max_attempts=3, sleep=fake_sleep)


@pytest.fixture
async def tracker(redis, poller):
    t = CertificateTracker(redis, poller, session_ttl=600)
    yield t
    await t.shutdown()


@pytest.fixture
def student():
    return Viewer(id=STUDENT["_id"], email=STUDENT["email"], display_name=STUDENT["displayName"], token=STUDENT_TOKEN)


@pytest.fixture
def admin():
    return Viewer(id=ADMIN["_id"], email=ADMIN["email"], display_name=ADMIN["displayName"], is_admin=True, token=ADMIN_TOKEN)
