"""Tests for the CELCAT HTTP client."""

from urllib.parse import parse_qs

import httpx
import pytest

from celcat_feed.celcat_fetcher import (
    CelcatClient,
    build_form_data,
    normalize_celcat_payload,
    parse_search_results,
)
from celcat_feed.core.exceptions import UpstreamHTTPError, UpstreamTransportError

pytestmark = pytest.mark.unit

URL = "https://celcat.example/Calendar/Home/GetCalendarData"
SEARCH_URL = "https://celcat.example/Calendar/Home/ReadResourceListItems"
STATUS_URL = "https://celcat.example/Calendar/Home/Index"


def _client(handler) -> CelcatClient:
    return CelcatClient(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _directory(handler) -> CelcatClient:
    return CelcatClient(
        URL,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        search_url=SEARCH_URL,
        status_url=STATUS_URL,
    )


class TestFormData:
    def test_build_form_data_then_group_query_fields(self) -> None:
        assert build_form_data("123", "2024-08-01", "2025-08-31") == {
            "start": "2024-08-01",
            "end": "2025-08-31",
            "resType": "103",
            "calView": "month",
            "federationIds[]": "123",
            "colourScheme": "3",
        }


class TestNormalizePayload:
    def test_normalize_when_array_then_nulls_dropped(self) -> None:
        assert normalize_celcat_payload([{"id": "e1"}, None, "x", {"id": "e2"}]) == [
            {"id": "e1"},
            {"id": "e2"},
        ]

    @pytest.mark.parametrize("key", ["d", "events"])
    def test_normalize_when_wrapped_then_unwrapped(self, key: str) -> None:
        assert normalize_celcat_payload({key: [{"id": "e1"}]}) == [{"id": "e1"}]

    @pytest.mark.parametrize("data", [None, {"unexpected": True}, "text", 3])
    def test_normalize_when_unexpected_shape_then_empty(self, data) -> None:
        assert normalize_celcat_payload(data) == []


class TestFetchGroup:
    async def test_fetch_group_then_posts_form_and_returns_events(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["form"] = parse_qs(request.content.decode())
            seen["headers"] = request.headers
            return httpx.Response(200, json=[{"id": "e1"}, None])

        events = await _client(handler).fetch_group("123", "2024-08-01", "2025-08-31")

        assert events == [{"id": "e1"}]
        assert seen["method"] == "POST"
        assert seen["form"]["federationIds[]"] == ["123"]
        assert seen["form"]["resType"] == ["103"]
        assert seen["headers"]["user-agent"].startswith("celcat-feed/")

    async def test_fetch_group_when_server_error_then_http_error(self) -> None:
        client = _client(lambda request: httpx.Response(503, text="busy"))

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.fetch_group("123", "2024-08-01", "2025-08-31")

        assert exc_info.value.status == 503
        assert exc_info.value.context["group_key"] == "123"

    async def test_fetch_group_when_connection_fails_then_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamTransportError) as exc_info:
            await _client(handler).fetch_group("123", "2024-08-01", "2025-08-31")

        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    async def test_fetch_group_when_timeout_then_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamTransportError):
            await _client(handler).fetch_group("123", "2024-08-01", "2025-08-31")

    async def test_fetch_group_when_body_not_json_then_empty(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        assert await client.fetch_group("123", "2024-08-01", "2025-08-31") == []


class TestSearchGroups:
    def test_parse_search_results_when_html_and_blanks_then_cleaned_and_filtered(self) -> None:
        data = {
            "results": [
                {"id": "g1", "text": "<b>L3</b> Informatique"},
                {"id": "", "text": "no id"},
                {"id": "g2", "text": "<span></span>"},
                None,
                {"id": 42, "text": "M1 &amp; M2"},
            ]
        }

        items = parse_search_results(data, limit=15)

        assert [(item.id, item.text) for item in items] == [
            ("g1", "L3 Informatique"),
            ("42", "M1 & M2"),
        ]

    def test_parse_search_results_when_more_than_limit_then_truncated(self) -> None:
        data = {"results": [{"id": f"g{index}", "text": f"Group {index}"} for index in range(30)]}

        assert len(parse_search_results(data, limit=15)) == 15

    @pytest.mark.parametrize("data", [None, [], {"results": None}, "text"])
    def test_parse_search_results_when_unexpected_shape_then_empty(self, data) -> None:
        assert parse_search_results(data, limit=15) == []

    async def test_search_groups_then_get_with_group_resource_query(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["params"] = dict(request.url.params)
            seen["headers"] = request.headers
            return httpx.Response(200, json={"results": [{"id": "g1", "text": "L3 Info"}]})

        items = await _directory(handler).search_groups("L3 Info", limit=15)

        assert [item.id for item in items] == ["g1"]
        assert seen["method"] == "GET"
        assert seen["url"].startswith(SEARCH_URL)
        assert seen["params"]["searchTerm"] == "L3 Info"
        assert seen["params"]["resType"] == "103"
        assert seen["params"]["pageSize"] == "20"
        assert seen["params"]["myResources"] == "false"
        assert seen["headers"]["x-requested-with"] == "XMLHttpRequest"

    async def test_search_groups_when_server_error_then_http_error(self) -> None:
        client = _directory(lambda request: httpx.Response(500))

        with pytest.raises(UpstreamHTTPError):
            await client.search_groups("L3 Info")

    async def test_search_groups_when_no_search_url_then_value_error(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"results": []}))

        with pytest.raises(ValueError):
            await client.search_groups("L3 Info")


class TestCheckStatus:
    async def test_check_status_when_home_page_ok_then_online(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            return httpx.Response(200)

        assert await _directory(handler).check_status(timeout=3.0) is True
        assert seen == {"method": "HEAD", "url": STATUS_URL}

    async def test_check_status_when_server_error_then_offline(self) -> None:
        assert await _directory(lambda request: httpx.Response(503)).check_status() is False

    async def test_check_status_when_timeout_then_offline(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        assert await _directory(handler).check_status() is False
