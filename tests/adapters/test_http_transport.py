"""HTTP transport behaviour against ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from lib_tag_config.adapters.transport.http import NO_CACHE_HEADERS, HttpTransport, build_url, with_cache_buster
from tests.support import StaticSite


def _fetch(handler, path: str, *, base_url: str = "https://cdn.example/conf"):
    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with HttpTransport(base_url, client=client, clock_ms=lambda: 1234) as transport:
            result = await transport.fetch(path)
        await client.aclose()
        return result

    return asyncio.run(scenario())


def test_fetch_decodes_json_and_busts_caches() -> None:
    site = StaticSite({"eu/tips.json": {"tips": [{"id": "t"}]}})
    assert _fetch(site, "eu/tips.json") == {"tips": [{"id": "t"}]}
    request = site.requests[0]
    assert request.url.params["t"] == "1234"
    for header, value in NO_CACHE_HEADERS.items():
        assert request.headers[header] == value


def test_base_url_trailing_slash_is_normalised() -> None:
    site = StaticSite({"default.json": {"defaultTag": "base"}})
    assert _fetch(site, "default.json", base_url="https://cdn.example/conf/") == {"defaultTag": "base"}
    assert site.requests[0].url.path == "/conf/default.json"


def test_missing_document_is_none() -> None:
    assert _fetch(StaticSite({}), "eu/conf.json") is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"}),
        httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"}),
    ],
)
def test_unusable_responses_are_none(response: httpx.Response, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="lib_tag_config")
    assert _fetch(lambda request: response, "eu/events.json") is None
    record = caplog.records[-1]
    assert record.getMessage() == "document_fetch_failed"
    assert record.context["path"] == "eu/events.json"


def test_connection_error_is_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert _fetch(handler, "eu/conf.json") is None


def test_json_without_content_type_is_accepted() -> None:
    response = httpx.Response(200, content=b'{"ok": true}')
    assert _fetch(lambda request: response, "eu/conf.json") == {"ok": True}


def test_transport_owns_lazily_created_client() -> None:
    async def scenario():
        transport = HttpTransport("https://cdn.example/conf")
        client = transport._get_client()
        await transport.aclose()
        return client

    assert asyncio.run(scenario()).is_closed


def test_owned_client_is_rebuilt_for_each_event_loop() -> None:
    transport = HttpTransport("https://cdn.example/conf")

    async def clients():
        return transport._get_client(), transport._get_client()

    async def last_client():
        client = transport._get_client()
        await transport.aclose()
        return client

    first, same_loop = asyncio.run(clients())
    second = asyncio.run(last_client())

    assert first is same_loop
    assert second is not first
    assert second.is_closed


def test_injected_client_is_kept_across_event_loops() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(StaticSite({})))
    transport = HttpTransport("https://cdn.example/conf", client=client)

    async def current():
        return transport._get_client()

    assert asyncio.run(current()) is client
    assert asyncio.run(current()) is client


def test_url_helpers() -> None:
    assert build_url("https://x/conf", "eu/conf.json") == "https://x/conf/eu/conf.json"
    assert with_cache_buster("https://x/a.json?v=1", 9) == "https://x/a.json?v=1&t=9"
