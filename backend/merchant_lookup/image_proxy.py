"""
Image proxy for the design-tool runtime.

The marketplace image CDN refuses cross-origin loads without a matching
referrer, so the plugin fetches images through `/image?url=...` and we
re-request them server-side with browser headers.
"""

import logging
from urllib.parse import urlparse

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from merchant_lookup.errors import InvalidImageURL

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
PASSTHROUGH_HEADERS = ("cache-control", "etag", "last-modified")


def validate_image_url(url: str | None) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidImageURL("Missing url query param")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidImageURL("url must be an absolute http(s) URL")
    return url


async def proxy_image(fetcher, url: str) -> StreamingResponse:
    """Stream `url` back with its original content type.

    Raises InvalidImageURL for bad input and UpstreamHTTPError for a non-2xx
    upstream answer; the route maps both to status codes.
    """
    url = validate_image_url(url)
    upstream = await fetcher.open_stream(url)
    content_type = upstream.headers.get("content-type") or DEFAULT_CONTENT_TYPE
    headers = {
        name: upstream.headers[name]
        for name in PASSTHROUGH_HEADERS
        if name in upstream.headers
    }
    logger.debug("[proxy] %s (%s)", url, content_type)
    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=upstream.status_code,
        media_type=content_type,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )
