from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from academy_crm import rate_limiter
from academy_crm.errors import ApiError, RateLimitError
from academy_crm.rate_limiter import check_rate_limit, rate_limit_dependency

pytestmark = pytest.mark.unit


def redis_returning(count, ttl):
    client = MagicMock()
    client.pipeline.return_value.execute.return_value = [count, ttl]
    return client


def make_request(headers=None, host="10.0.0.1"):
    return SimpleNamespace(headers=headers or {}, client=SimpleNamespace(host=host), state=SimpleNamespace())


class TestCheckRateLimit:
    def test_first_hit_opens_the_window(self):
        client = redis_returning(1, -1)

        allowed, count, ttl = check_rate_limit("api:ip:1", 5, 60, client)

        assert (allowed, count, ttl) == (True, 1, 60)
        client.expire.assert_called_once_with("api:ip:1", 60)

    def test_within_window(self):
        client = redis_returning(3, 42)

        assert check_rate_limit("api:ip:1", 5, 60, client) == (True, 3, 42)
        client.expire.assert_not_called()

    def test_over_limit(self):
        allowed, count, _ = check_rate_limit("api:ip:1", 5, 60, redis_returning(6, 10))

        assert allowed is False
        assert count == 6


class TestDependency:
    async def test_sets_remaining_on_request_state(self, monkeypatch):
        monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: redis_returning(2, 30))
        request = make_request()

        await rate_limit_dependency(request, limit=10, window_seconds=60)

        assert request.state.rate_limit_remaining == 8
        assert request.state.rate_limit_limit == 10

    async def test_exceeded_raises_with_retry_after(self, monkeypatch):
        monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: redis_returning(11, 17))

        with pytest.raises(RateLimitError) as exc_info:
            await rate_limit_dependency(make_request(), limit=10, window_seconds=60)

        error = exc_info.value
        assert error.status_code == 429
        assert error.headers["Retry-After"] == "17"
        assert error.to_dict()["details"] == {"retryAfter": 17}

    async def test_forwarded_ip_is_the_identity(self, monkeypatch):
        client = redis_returning(1, 60)
        monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: client)

        await rate_limit_dependency(
            make_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}), limit=10, window_seconds=60
        )

        client.pipeline.return_value.incr.assert_called_once_with("rate_limit:ip:203.0.113.9")

    async def test_fails_open_without_redis(self, monkeypatch):
        def unavailable():
            raise ConnectionError("no redis")

        monkeypatch.setattr(rate_limiter, "get_redis_client", unavailable)
        monkeypatch.setattr(rate_limiter, "RATE_LIMIT_FAIL_OPEN", True)

        assert await rate_limit_dependency(make_request(), limit=10, window_seconds=60) is None

    async def test_fails_closed_when_configured(self, monkeypatch):
        def unavailable():
            raise ConnectionError("no redis")

        monkeypatch.setattr(rate_limiter, "get_redis_client", unavailable)
        monkeypatch.setattr(rate_limiter, "RATE_LIMIT_FAIL_OPEN", False)

        with pytest.raises(ApiError) as exc_info:
            await rate_limit_dependency(make_request(), limit=10, window_seconds=60)
        assert exc_info.value.status_code == 503
