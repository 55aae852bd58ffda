"""
Tests for rate limiting functionality.

These tests verify that the session and admin endpoints are rate limited and
that HTTP 429 responses include the Retry-After header as required by RFC 6585.
"""

import pytest

from campus_sessions.core.config import settings
from campus_sessions.core.limiter import create_limiter, get_limiter_storage
from tests.utils.factories import ProfileFactory, SessionPayloadFactory
from tests.utils.helpers import SERVICE_HEADERS

pytestmark = pytest.mark.api


def _limit_count(limit: str) -> int:
    return int(limit.split("/")[0])


def _assert_retry_after(response):
    assert "retry-after" in response.headers, "HTTP 429 response must include Retry-After header"

    retry_after = response.headers["retry-after"]
    assert retry_after.isdigit(), f"Retry-After header must be a number of seconds, got: {retry_after}"

    # Per-minute limits never ask for more than a minute
    assert 0 < int(retry_after) <= 60


class TestRateLimitingRetryAfterHeader:
    """Test that rate limiting returns proper Retry-After headers."""

    def test_status_endpoint_returns_429_with_retry_after_header(self, client):
        allowed = _limit_count(settings.rate_limit_session_endpoints)

        responses = [
            client.get("/api/sessions/status", params={"userId": "nobody"})
            for _ in range(allowed + 1)
        ]

        assert all(r.status_code == 404 for r in responses[:allowed])
        assert responses[-1].status_code == 429
        _assert_retry_after(responses[-1])

    def test_login_endpoint_is_rate_limited(self, client):
        allowed = _limit_count(settings.rate_limit_session_endpoints)
        payload = SessionPayloadFactory.create()

        statuses = [
            client.post("/api/sessions", json=payload, headers=SERVICE_HEADERS).status_code
            for _ in range(allowed + 1)
        ]

        assert statuses[0] == 201
        assert set(statuses[1:allowed]) == {200}
        assert statuses[-1] == 429

    def test_admin_endpoint_has_tighter_limit(self, client):
        payload = SessionPayloadFactory.create(user_id="admin-1", profile=ProfileFactory.create_admin())
        assert client.post("/api/sessions", json=payload, headers=SERVICE_HEADERS).status_code == 201
        allowed = _limit_count(settings.rate_limit_admin_endpoints)

        responses = [client.get("/api/admin/sessions/stats") for _ in range(allowed + 1)]

        assert all(r.status_code == 200 for r in responses[:allowed])
        assert responses[-1].status_code == 429
        _assert_retry_after(responses[-1])

    def test_limits_are_tracked_per_endpoint(self, client):
        allowed = _limit_count(settings.rate_limit_session_endpoints)
        for _ in range(allowed + 1):
            client.get("/api/sessions/status", params={"userId": "nobody"})

        response = client.post("/api/sessions", json=SessionPayloadFactory.create(), headers=SERVICE_HEADERS)

        assert response.status_code == 201

    def test_rate_limited_response_carries_error(self, client):
        allowed = _limit_count(settings.rate_limit_session_endpoints)
        for _ in range(allowed):
            client.get("/api/sessions/status", params={"userId": "nobody"})

        response = client.get("/api/sessions/status", params={"userId": "nobody"})

        assert response.status_code == 429
        assert "Rate limit exceeded" in response.json()["error"]


class TestLimiterStorage:
    """Test rate limiting storage selection"""

    def test_in_memory_without_redis(self, monkeypatch):
        monkeypatch.setattr(settings, "redis_url", None)
        assert get_limiter_storage() is None
        assert create_limiter() is not None

    def test_invalid_redis_url_falls_back_to_memory(self, monkeypatch):
        monkeypatch.setattr(settings, "redis_url", "http://not-redis:6379")
        assert get_limiter_storage() is None

    def test_redis_url_is_used_when_valid(self, monkeypatch):
        monkeypatch.setattr(settings, "redis_url", "redis://cache:6379/0")
        assert get_limiter_storage() == "redis://cache:6379/0"
