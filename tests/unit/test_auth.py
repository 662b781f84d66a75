import httpx
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from fitacademy.auth.dependencies import resolve_viewer
from fitacademy.auth.tokens import claims_user_id, extract_token, inspect_token, seconds_until_expiry
from fitacademy.schemas.auth_schemas import is_admin_email
from tests.factories import ADMIN_TOKEN, STUDENT_TOKEN, make_token


def _request(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "query_string": b""})


@pytest.mark.unit
class TestTokens:
    def test_cookie_wins_over_header(self):
        request = _request({"Cookie": "token=from-cookie", "Authorization": "Bearer from-header"})
        assert extract_token(request) == "from-cookie"

    def test_bearer_header(self):
        assert extract_token(_request({"Authorization": "Bearer abc"})) == "abc"
        assert extract_token(_request({"Authorization": "Basic abc"})) is None

    def test_expired_token_rejected(self):
        with pytest.raises(ValueError, match="expired"):
            inspect_token(make_token("u1", "a@b.c", ttl=-10))

    def test_garbage_token_rejected(self):
        with pytest.raises(ValueError):
            inspect_token("not-a-jwt")

    def test_claims(self):
        claims = inspect_token(STUDENT_TOKEN)
        assert claims_user_id(claims) == "u1"
        assert 0 < seconds_until_expiry(claims) <= 3600

    def test_admin_allow_list_ignores_case(self):
        assert is_admin_email(" Coach@FitAcademy.test ", ["coach@fitacademy.test"])
        assert not is_admin_email(None, ["coach@fitacademy.test"])


@pytest.mark.unit
class TestResolveViewer:
    async def test_viewer_cached_after_first_lookup(self, redis, backend, upstream):
        first = await resolve_viewer(STUDENT_TOKEN, redis, backend)
        second = await resolve_viewer(STUDENT_TOKEN, redis, backend)
        assert first.id == second.id == "u1"
        assert second.token == STUDENT_TOKEN
        assert len(upstream.calls_to("GET", "/api/auth/me")) == 1

    async def test_admin_flag_from_allow_list(self, redis, backend):
        viewer = await resolve_viewer(ADMIN_TOKEN, redis, backend)
        assert viewer.is_admin is True

    async def test_rejected_token_is_401(self, redis, backend):
        with pytest.raises(HTTPException) as exc:
            await resolve_viewer(make_token("u7", "ghost@fit.test"), redis, backend)
        assert exc.value.status_code == 401

    async def test_offline_fallback_never_grants_admin(self, redis, backend, upstream):
        def down(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream.on("GET", "/api/auth/me", down)
        viewer = await resolve_viewer(ADMIN_TOKEN, redis, backend)
        assert viewer.id == "a1"
        assert viewer.email == "coach@fitacademy.test"
        assert viewer.is_admin is False
