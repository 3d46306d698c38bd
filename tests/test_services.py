from datetime import date, datetime
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import httpx
import pytest
import redis

from academy_crm import cache as cache_module
from academy_crm.cache import ProviderCache
from academy_crm.errors import ExternalProviderError
from academy_crm.services import holidays_service, whatsapp_service, zoom_service
from academy_crm.services.holidays_service import fetch_holidays, is_class_free_day
from academy_crm.services.whatsapp_service import format_chat_id, send_whatsapp_message
from academy_crm.services.zoom_service import ZoomService

pytestmark = pytest.mark.unit

HEBCAL_ITEMS = [
    {"title": "Erev Pesach", "date": "2024-04-22", "category": "holiday"},
    {"title": "Pesach I", "date": "2024-04-23", "category": "holiday"},
    {"title": "Lag BaOmer", "date": "2024-05-26", "category": "minor"},
    {"title": "Shavuot", "date": "2024-06-12T00:00:00", "category": "major"},
]


def mock_http(monkeypatch, module, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(module.httpx, "AsyncClient", client_factory)


@pytest.fixture
def empty_cache(monkeypatch):
    fake = MagicMock()
    fake.get.return_value = None
    monkeypatch.setattr(holidays_service, "holiday_cache", fake)
    return fake


class TestHolidays:
    def test_class_free_days(self):
        assert is_class_free_day({"title": "Erev Yom Kippur"})
        assert is_class_free_day({"title": "Chanukah: 3 Candles", "category": "major"})
        assert not is_class_free_day({"title": "Tu BiShvat", "category": "minor"})

    async def test_fetch_filters_and_caches(self, monkeypatch, empty_cache):
        seen = {}

        def handler(request):
            seen["year"] = request.url.params["year"]
            return httpx.Response(200, json={"items": HEBCAL_ITEMS})

        mock_http(monkeypatch, holidays_service, handler)

        holidays = await fetch_holidays(2024)

        assert holidays == {date(2024, 4, 22), date(2024, 4, 23), date(2024, 6, 12)}
        assert seen["year"] == "2024"
        key, cached = empty_cache.set.call_args.args
        assert key == "2024"
        assert cached == ["2024-04-22", "2024-04-23", "2024-06-12"]

    async def test_cached_year_skips_the_provider(self, monkeypatch, empty_cache):
        empty_cache.get.return_value = ["2024-10-03"]

        def handler(request):
            raise AssertionError("provider should not be called")

        mock_http(monkeypatch, holidays_service, handler)

        assert await fetch_holidays(2024) == {date(2024, 10, 3)}

    async def test_provider_failure_yields_no_holidays(self, monkeypatch, empty_cache):
        mock_http(monkeypatch, holidays_service, lambda request: httpx.Response(503))

        assert await fetch_holidays(2024) == set()
        empty_cache.set.assert_not_called()

    async def test_range_spans_years(self, monkeypatch, empty_cache):
        def handler(request):
            year = request.url.params["year"]
            return httpx.Response(
                200, json={"items": [{"title": "Pesach I", "date": f"{year}-04-10", "category": "holiday"}]}
            )

        mock_http(monkeypatch, holidays_service, handler)

        holidays = await holidays_service.get_holidays_between(date(2024, 6, 1), date(2025, 6, 1))

        assert holidays == {date(2025, 4, 10)}


class TestWhatsApp:
    @pytest.mark.parametrize(
        "phone,chat_id",
        [
            ("052-123-4567", "972521234567@c.us"),
            ("521234567", "972521234567@c.us"),
            ("+972 52 123 4567", "972521234567@c.us"),
        ],
    )
    def test_chat_id(self, phone, chat_id):
        assert format_chat_id(phone) == chat_id

    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(whatsapp_service, "GREEN_API_INSTANCE_ID", None)

        assert await send_whatsapp_message("0521234567", "hi") is False

    async def test_sends_to_green_api(self, monkeypatch):
        monkeypatch.setattr(whatsapp_service, "GREEN_API_INSTANCE_ID", "1101")
        monkeypatch.setattr(whatsapp_service, "GREEN_API_TOKEN", "token")
        sent = []

        def handler(request):
            sent.append((request.url.path, request.read()))
            return httpx.Response(200, json={"idMessage": "abc"})

        mock_http(monkeypatch, whatsapp_service, handler)

        assert await send_whatsapp_message("0521234567", "Negative profit") is True
        path, body = sent[0]
        assert path == "/waInstance1101/sendMessage/token"
        assert b"972521234567@c.us" in body


class TestProviderCache:
    def test_round_trip_uses_prefix_and_ttl(self, monkeypatch):
        client = MagicMock()
        client.get.return_value = '["2024-10-03"]'
        monkeypatch.setattr(cache_module, "get_redis_client", lambda: client)
        cache = ProviderCache("holidays", 600)

        assert cache.set("2024", ["2024-10-03"]) is True
        client.setex.assert_called_once_with("holidays:2024", 600, '["2024-10-03"]')
        assert cache.get("2024") == ["2024-10-03"]
        client.get.assert_called_once_with("holidays:2024")

    def test_redis_down_is_a_miss(self, monkeypatch):
        def unavailable():
            raise ConnectionError("no redis")

        monkeypatch.setattr(cache_module, "get_redis_client", unavailable)
        cache = ProviderCache("holidays", 600)

        assert cache.get("2024") is None
        assert cache.set("2024", []) is False

    def test_command_errors_are_a_miss(self, monkeypatch):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("reset")
        monkeypatch.setattr(cache_module, "get_redis_client", lambda: client)

        assert ProviderCache("holidays", 600).get("2024") is None


@pytest.fixture
def zoom(monkeypatch):
    monkeypatch.setattr(zoom_service, "ZOOM_ACCOUNT_ID", "acct")
    monkeypatch.setattr(zoom_service, "ZOOM_CLIENT_ID", "client")
    monkeypatch.setattr(zoom_service, "ZOOM_CLIENT_SECRET", "secret")
    return ZoomService()


def zoom_api(calls, overrides=None):
    routes = {
        ("POST", "/oauth/token"): httpx.Response(200, json={"access_token": "tok", "expires_in": 3600}),
        ("GET", "/v2/users"): httpx.Response(
            200,
            json={
                "users": [
                    {"id": "u1", "status": "inactive"},
                    {"id": "u2", "status": "active", "email": "busy@academy.test"},
                    {"id": "u3", "status": "active", "email": "free@academy.test"},
                ]
            },
        ),
        ("GET", "/v2/users/u2/meetings"): httpx.Response(
            200, json={"meetings": [{"start_time": "2024-03-03T15:00:00Z", "duration": 60}]}
        ),
        ("GET", "/v2/users/u3/meetings"): httpx.Response(200, json={"meetings": []}),
        ("GET", "/v2/users/u3"): httpx.Response(200, json={"host_key": "123456"}),
    }
    routes.update(overrides or {})

    def handler(request):
        calls.append((request.method, request.url.path))
        return routes[(request.method, request.url.path)]

    return handler


class TestZoom:
    async def test_first_free_active_host(self, monkeypatch, zoom):
        calls = []
        mock_http(monkeypatch, zoom_service, zoom_api(calls))
        # 17:50 in Jerusalem is 15:50 UTC, inside u2's 15:00-16:00 meeting
        start = datetime(2024, 3, 3, 17, 50, tzinfo=ZoneInfo("Asia/Jerusalem"))

        host = await zoom.find_available_host(start, 70)

        assert host["id"] == "u3"
        assert host["host_key"] == "123456"
        assert ("GET", "/v2/users/u1/meetings") not in calls
        assert calls.count(("POST", "/oauth/token")) == 1

    async def test_no_host_free(self, monkeypatch, zoom):
        busy = httpx.Response(200, json={"meetings": [{"start_time": "2024-03-03T15:30:00Z", "duration": 90}]})
        mock_http(monkeypatch, zoom_service, zoom_api([], {("GET", "/v2/users/u3/meetings"): busy}))
        start = datetime(2024, 3, 3, 17, 50, tzinfo=ZoneInfo("Asia/Jerusalem"))

        assert await zoom.find_available_host(start, 70) is None

    async def test_api_errors_become_provider_errors(self, monkeypatch, zoom):
        failing = {("POST", "/v2/users/u3/meetings"): httpx.Response(500, text="boom")}
        mock_http(monkeypatch, zoom_service, zoom_api([], failing))
        start = datetime(2024, 3, 3, 17, 50, tzinfo=ZoneInfo("Asia/Jerusalem"))

        with pytest.raises(ExternalProviderError) as exc_info:
            await zoom.create_room("u3", "Robotics", start, 70)
        assert exc_info.value.provider == "zoom"

    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(zoom_service, "ZOOM_ACCOUNT_ID", None)

        with pytest.raises(ExternalProviderError):
            await ZoomService().delete_room("98765")
