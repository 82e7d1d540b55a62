"""
Outbound HTTP with browser-like headers.

The marketplace JSON endpoints and the image CDN reject requests that do not
look like they came from the shopping site, so every call carries a desktop
user agent and the shopping page as referrer.
"""

import logging

import httpx

from merchant_lookup.errors import UpstreamHTTPError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)


def browser_headers(referer: str, accept: str = "application/json, text/plain, */*") -> dict:
    return {
        "User-Agent": USER_AGENT,
        "Accept-Language": "en-US,en;q=0.9",
        "Accept": accept,
        "Referer": referer,
    }


def build_client(timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """One client per process; closed by Services.aclose()."""
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport)


class HttpFetcher:
    def __init__(self, client: httpx.AsyncClient, referer: str):
        self.client = client
        self.referer = referer

    def _check(self, resp: httpx.Response, url: str) -> httpx.Response:
        if resp.is_success:
            return resp
        try:
            body = resp.text
        except Exception:
            body = "<unable_to_read_response_body>"
        logger.debug("[http] %s -> %s", url, resp.status_code)
        raise UpstreamHTTPError(resp.status_code, url, body)

    async def get_json(self, url: str):
        logger.debug("[http] GET %s", url)
        resp = await self.client.get(url, headers=browser_headers(self.referer))
        self._check(resp, url)
        return resp.json()

    async def get_text(self, url: str) -> str:
        logger.debug("[http] GET %s", url)
        resp = await self.client.get(url, headers=browser_headers(self.referer, accept="text/html,*/*"))
        self._check(resp, url)
        return resp.text

    async def post_json(self, url: str, body: dict):
        logger.debug("[http] POST %s", url)
        resp = await self.client.post(url, json=body, headers=browser_headers(self.referer))
        self._check(resp, url)
        return resp.json()

    async def open_stream(self, url: str, accept: str = "image/avif,image/webp,image/*,*/*;q=0.8") -> httpx.Response:
        """Start a streamed GET. The caller owns the response and must aclose() it."""
        request = self.client.build_request("GET", url, headers=browser_headers(self.referer, accept=accept))
        resp = await self.client.send(request, stream=True)
        if not resp.is_success:
            await resp.aclose()
            raise UpstreamHTTPError(resp.status_code, url)
        return resp
