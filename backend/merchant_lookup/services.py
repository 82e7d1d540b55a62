"""
Process-scoped state, built at startup and torn down at shutdown.

Routes reach everything through `app.state.services`; tests build their own
container (mock settings, fake transport) instead of patching globals.
"""

import logging
import time
from dataclasses import dataclass, field

import httpx

from merchant_lookup.browser import BrowserSession
from merchant_lookup.cache import LookupCache
from merchant_lookup.http_client import HttpFetcher, build_client
from merchant_lookup.resolver import MerchantResolver
from merchant_lookup.scraper import MerchantScraper

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: object
    client: httpx.AsyncClient
    fetcher: HttpFetcher
    browser: BrowserSession
    scraper: MerchantScraper
    resolver: MerchantResolver
    cache: LookupCache
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    async def aclose(self):
        await self.browser.close()
        await self.client.aclose()
        logger.info("[services] Shut down")


def build_services(settings, transport: httpx.AsyncBaseTransport | None = None) -> Services:
    client = build_client(timeout=settings.request_timeout_seconds, transport=transport)
    fetcher = HttpFetcher(client, referer=settings.referer)
    browser = BrowserSession(settings)
    scraper = MerchantScraper(browser, settings)
    return Services(
        settings=settings,
        client=client,
        fetcher=fetcher,
        browser=browser,
        scraper=scraper,
        resolver=MerchantResolver(settings, fetcher, scraper),
        cache=LookupCache(ttl_seconds=settings.cache_ttl_seconds),
    )
