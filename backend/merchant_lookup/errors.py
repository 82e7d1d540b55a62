class MerchantLookupError(Exception):
    """Base exception for the lookup server."""


class UpstreamHTTPError(MerchantLookupError):
    """An outbound request answered with a non-2xx status."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body[:500]
        super().__init__(f"HTTP {status_code} fetching {url}")


class ScrapeError(MerchantLookupError):
    """A scrape step failed; `reason` ends up in ScrapeResult.error."""

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class InvalidImageURL(MerchantLookupError, ValueError):
    """Image proxy input is missing or not an absolute http(s) URL."""


class BrowserLaunchError(MerchantLookupError):
    """Neither the preferred nor the bundled browser could be launched."""
