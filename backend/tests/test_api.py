from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from merchant_lookup.main import create_app
from merchant_lookup.models import MerchantRecord

from conftest import make_settings


@pytest.fixture
def client():
    with TestClient(create_app(make_settings(use_mock=True))) as c:
        yield c


def image_client(handler):
    app = create_app(make_settings(use_mock=True), transport=httpx.MockTransport(handler))
    return TestClient(app)


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert "GET /lookup" in body["endpoints"]


def test_lookup_requires_name(client):
    for path in ("/lookup", "/lookup?name=", "/lookup?name=%20%20"):
        resp = client.get(path)
        assert resp.status_code == 400
        assert "error" in resp.json()
        assert resp.json()["usage"].startswith("/lookup")


def test_lookup_mock_nike(client):
    resp = client.get("/lookup", params={"name": "Nike"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Nike"
    assert "Nike+logo" in body["logoUrl"]
    assert "Nike+hero" in body["heroUrl"]
    assert body["merchantAri"] == "MOCK123"


def test_lookup_failure_maps_to_500(client):
    async def explode(query):
        raise RuntimeError("search shape changed")

    client.app.state.services.resolver.lookup_merchant = explode
    resp = client.get("/lookup", params={"name": "Nike"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "lookup_failed", "message": "search shape changed", "merchantName": "Nike"}


def test_health_reports_cache_state(client):
    client.get("/lookup", params={"name": "Nike"})
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["cacheSize"] == 1
    assert body["inFlight"] == 0
    assert body["uptime"] >= 0


def test_clear_cache_then_miss(client):
    for name in ("Nike", "nike ", "Samsung", "Macy's"):
        client.get("/lookup", params={"name": name})
    resp = client.post("/clear-cache")
    assert resp.json() == {"ok": True, "cleared": 3}
    assert client.get("/health").json()["cacheSize"] == 0

    calls = []
    resolver = client.app.state.services.resolver
    original = resolver.lookup_merchant

    async def counting(query):
        calls.append(query)
        return await original(query)

    resolver.lookup_merchant = counting
    client.get("/lookup", params={"name": "Nike"})
    client.get("/lookup", params={"name": "NIKE"})
    assert calls == ["Nike"]


def test_batch_lookup_preserves_order_and_proxies_images(client):
    resp = client.post("/lookup", json={"queries": ["Nike", "  ", "Samsung", "nike"]})
    assert resp.status_code == 200
    results = resp.json()["results"]
    assert [r["query"] for r in results] == ["Nike", "Samsung", "nike"]
    assert results[0]["heroUrl"] == results[2]["heroUrl"]

    proxy = urlparse(results[1]["logoProxyUrl"])
    assert proxy.path == "/image"
    assert parse_qs(proxy.query)["url"] == [results[1]["logoUrl"]]


@pytest.mark.parametrize("body", [{}, {"queries": "Nike"}, {"queries": [1, 2]}, ["Nike"]])
def test_batch_rejects_bad_input(client, body):
    resp = client.post("/lookup", json=body)
    assert resp.status_code == 400
    assert "usage" in resp.json()


def test_batch_rejects_oversize(client):
    resp = client.post("/lookup", json={"queries": [f"m{i}" for i in range(51)]})
    assert resp.status_code == 400


def test_batch_item_failure_does_not_fail_batch(client):
    resolver = client.app.state.services.resolver
    original = resolver.lookup_merchant

    async def flaky(query):
        if query == "Bad":
            raise RuntimeError("nope")
        return await original(query)

    resolver.lookup_merchant = flaky
    results = client.post("/lookup", json={"queries": ["Good", "Bad"]}).json()["results"]
    assert results[0]["name"] == "Good"
    assert results[1]["error"] == "lookup_failed"
    assert results[1]["message"] == "nope"


def test_image_proxy_streams_with_content_type():
    seen = {}

    def handler(request):
        seen["referer"] = request.headers.get("referer")
        return httpx.Response(200, content=b"\x89PNG...", headers={"content-type": "image/png"})

    with image_client(handler) as c:
        resp = c.get("/image", params={"url": "https://cdn-assets.affirm.com/m/nike.png"})
    assert resp.status_code == 200
    assert resp.content == b"\x89PNG..."
    assert resp.headers["content-type"] == "image/png"
    assert seen["referer"] == "https://www.affirm.com/shopping"


def test_image_proxy_defaults_content_type():
    with image_client(lambda request: httpx.Response(200, content=b"raw")) as c:
        resp = c.get("/image", params={"url": "https://cdn-assets.affirm.com/m/blob"})
    assert resp.headers["content-type"] == "application/octet-stream"


def test_image_proxy_passes_upstream_status():
    with image_client(lambda request: httpx.Response(403)) as c:
        resp = c.get("/image", params={"url": "https://cdn-assets.affirm.com/m/nike.png"})
    assert resp.status_code == 403


@pytest.mark.parametrize("url", ["", "ftp://cdn/x.png", "/relative.png", "javascript:alert(1)"])
def test_image_proxy_rejects_bad_urls(client, url):
    resp = client.get("/image", params={"url": url})
    assert resp.status_code == 400
    assert "error" in resp.json()


class ClosingBrowser:
    def __init__(self):
        self.closes = 0

    async def close(self):
        self.closes += 1


def test_shutdown_closes_browser_and_http_client_once():
    app = create_app(make_settings(use_mock=True))
    browser = ClosingBrowser()
    with TestClient(app) as c:
        services = c.app.state.services
        services.browser = browser
        assert c.get("/health").status_code == 200
        assert browser.closes == 0
    assert browser.closes == 1
    assert services.client.is_closed


def test_soft_failure_is_served_from_cache(client):
    calls = []

    async def soft_failure(query):
        calls.append(query)
        return MerchantRecord(name=query, error="no_autocomplete_options")

    client.app.state.services.resolver.lookup_merchant = soft_failure
    first = client.get("/lookup", params={"name": "Unknown Shop"}).json()
    second = client.get("/lookup", params={"name": "unknown shop"}).json()
    assert calls == ["Unknown Shop"]
    assert first["error"] == second["error"] == "no_autocomplete_options"
    assert second["heroUrl"] is None
